"""
Shared fixtures: a manual clock and a scripted word transport.
"""

from collections import deque
from typing import List, Optional, Tuple

import pytest

from pocketlink.arq.frame import Frame
from pocketlink.arq.parser import ReceiveParser
from pocketlink.config import LINK_HW_ID, TX_FIFO_WORDS
from pocketlink.layers.link_layer import LinkConfig, LinkSession
from pocketlink.layers.physical_layer import LinkStatus, Transport
from pocketlink.utils.logger import LinkLogger, LogLevel


class FakeClock:
    """Clock counted in whole milliseconds to keep comparisons exact."""

    def __init__(self):
        self.ms = 0

    def advance(self, seconds: float):
        self.ms += int(round(seconds * 1000))

    def __call__(self) -> float:
        return self.ms / 1000.0


class RecordingTransport(Transport):
    """
    Transport whose receive side is fed by the test and whose transmit
    side records every pushed word with the clock value at push time.
    """

    def __init__(self, clock: FakeClock, hw_id: int = LINK_HW_ID, tx_capacity: int = TX_FIFO_WORDS):
        self.clock = clock
        self.hw_id = hw_id
        self.tx_capacity = tx_capacity
        self.rx: deque = deque()
        self.sent: List[Tuple[float, int]] = []
        self.tx_used = 0
        self.enabled = False
        self.link_up = True
        self.configure_log: List[dict] = []

    def read_id(self) -> int:
        return self.hw_id

    def read_status(self) -> LinkStatus:
        return LinkStatus(
            link_up=self.enabled and self.link_up,
            peer_present=self.enabled and self.link_up,
            tx_full=self.tx_used >= self.tx_capacity,
            rx_empty=not self.rx
        )

    def configure(self, enable=True, master=False, clear_errors=False,
                  flush_rx=False, flush_tx=False, poll_enable=False):
        self.enabled = enable
        self.configure_log.append({
            'enable': enable, 'master': master, 'clear_errors': clear_errors,
            'flush_rx': flush_rx, 'flush_tx': flush_tx, 'poll_enable': poll_enable
        })
        if flush_rx:
            self.rx.clear()

    def push_word(self, word: int) -> bool:
        if not self.enabled or self.tx_used >= self.tx_capacity:
            return False
        self.sent.append((self.clock(), word))
        return True

    def pop_word(self) -> Optional[int]:
        return self.rx.popleft() if self.rx else None

    def tx_free_words(self) -> int:
        return self.tx_capacity - self.tx_used

    def rx_queued_words(self) -> int:
        return len(self.rx)

    def inject(self, frame: Frame):
        self.rx.extend(frame.encode())

    def sent_frames(self) -> List[Tuple[float, Frame]]:
        """Parse every recorded word back into (time, frame) pairs."""
        parser = ReceiveParser()
        frames = []
        for timestamp, word in self.sent:
            frame = parser.consume_word(word)
            if frame is not None:
                frames.append((timestamp, frame))
        return frames

    def frames_of_type(self, frame_type) -> List[Tuple[float, Frame]]:
        return [(t, f) for t, f in self.sent_frames() if f.frame_type == frame_type]

    def clear_sent(self):
        self.sent.clear()


def quiet_logger(name: str = "Test") -> LinkLogger:
    return LinkLogger(name=name, level=LogLevel.CRITICAL, use_colors=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport(clock):
    return RecordingTransport(clock)


@pytest.fixture
def session(transport, clock):
    return LinkSession(transport, LinkConfig(name="Test"), clock=clock, logger=quiet_logger())
