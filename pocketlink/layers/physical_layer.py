"""
Physical Layer Implementation

This module defines the word transport a link session talks to, and an
in-memory link cable that implements it with bounded FIFOs, flow control
and fault injection (word drop, Gilbert-Elliott bit corruption, stall,
unplug).
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, fields
from typing import Iterable, List, Optional

import numpy as np

from pocketlink.config import LINK_HW_ID, RX_FIFO_WORDS, TX_FIFO_WORDS
from pocketlink.channel.gilbert_elliot import GilbertElliottChannel


@dataclass
class LinkStatus:
    """
    Status register of a transport endpoint.

    Field order is the register bit order (link_up is bit 0).
    """
    link_up: bool = False
    peer_present: bool = False
    tx_full: bool = False
    rx_empty: bool = True
    rx_crc_error: bool = False
    rx_overflow: bool = False
    tx_overflow: bool = False
    desync: bool = False

    def to_register(self) -> int:
        value = 0
        for bit, item in enumerate(fields(self)):
            if getattr(self, item.name):
                value |= 1 << bit
        return value

    @classmethod
    def from_register(cls, value: int) -> 'LinkStatus':
        flags = {item.name: bool(value & (1 << bit)) for bit, item in enumerate(fields(cls))}
        return cls(**flags)


class Transport(ABC):
    """
    Non-blocking word channel used by a link session.

    push_word() and pop_word() never block; flow control is visible
    through read_status() and tx_free_words().
    """

    @abstractmethod
    def read_id(self) -> int:
        """Identification register; LINK_HW_ID when the transport is present."""

    @abstractmethod
    def read_status(self) -> LinkStatus:
        """Current status bits."""

    @abstractmethod
    def configure(
        self,
        enable: bool = True,
        master: bool = False,
        clear_errors: bool = False,
        flush_rx: bool = False,
        flush_tx: bool = False,
        poll_enable: bool = False
    ):
        """Apply a control register write."""

    @abstractmethod
    def push_word(self, word: int) -> bool:
        """Queue one word for transmission; False if it was not accepted."""

    @abstractmethod
    def pop_word(self) -> Optional[int]:
        """Take one received word, or None when nothing is queued."""

    @abstractmethod
    def tx_free_words(self) -> int:
        """Free space in the transmit FIFO, in words."""

    @abstractmethod
    def rx_queued_words(self) -> int:
        """Words waiting in the receive FIFO."""


class CableEndpoint(Transport):
    """
    One end of a LinkCable.

    Attributes:
        cable: Owning cable
        name: Endpoint label ("A" or "B")
        tx_fifo: Words waiting to cross the cable
        rx_fifo: Words received and not yet popped
    """

    def __init__(
        self,
        cable: 'LinkCable',
        name: str,
        tx_capacity: int = TX_FIFO_WORDS,
        rx_capacity: int = RX_FIFO_WORDS,
        hw_id: int = LINK_HW_ID
    ):
        self.cable = cable
        self.name = name
        self.tx_capacity = tx_capacity
        self.rx_capacity = rx_capacity
        self.hw_id = hw_id

        self.tx_fifo: deque = deque()
        self.rx_fifo: deque = deque()

        # Control register
        self.enabled = False
        self.master = False
        self.poll_enabled = False

        # Sticky error flags
        self.rx_crc_error = False
        self.rx_overflow = False
        self.tx_overflow = False
        self.desync = False

        # Statistics
        self.words_pushed = 0
        self.words_popped = 0
        self.push_rejections = 0
        self.configure_calls = 0
        self.error_clears = 0

    @property
    def peer(self) -> 'CableEndpoint':
        return self.cable.peer_of(self)

    def read_id(self) -> int:
        return self.hw_id

    def read_status(self) -> LinkStatus:
        self.cable.service()
        link_up = self.enabled and self.cable.plugged
        return LinkStatus(
            link_up=link_up,
            peer_present=link_up and self.peer.enabled,
            tx_full=len(self.tx_fifo) >= self.tx_capacity,
            rx_empty=len(self.rx_fifo) == 0,
            rx_crc_error=self.rx_crc_error,
            rx_overflow=self.rx_overflow,
            tx_overflow=self.tx_overflow,
            desync=self.desync
        )

    def configure(
        self,
        enable: bool = True,
        master: bool = False,
        clear_errors: bool = False,
        flush_rx: bool = False,
        flush_tx: bool = False,
        poll_enable: bool = False
    ):
        self.configure_calls += 1
        self.enabled = enable
        self.master = master
        self.poll_enabled = poll_enable

        if clear_errors:
            self.error_clears += 1
            self.rx_crc_error = False
            self.rx_overflow = False
            self.tx_overflow = False
            self.desync = False
        if flush_rx:
            self.rx_fifo.clear()
        if flush_tx:
            self.tx_fifo.clear()

    def push_word(self, word: int) -> bool:
        if not self.enabled or len(self.tx_fifo) >= self.tx_capacity:
            self.tx_overflow = True
            self.push_rejections += 1
            return False

        self.tx_fifo.append(word & 0xFFFFFFFF)
        self.words_pushed += 1
        if self.cable.auto_transfer:
            self.cable.service()
        return True

    def pop_word(self) -> Optional[int]:
        if not self.rx_fifo:
            return None
        self.words_popped += 1
        return self.rx_fifo.popleft()

    def tx_free_words(self) -> int:
        self.cable.service()
        return max(0, self.tx_capacity - len(self.tx_fifo))

    def rx_queued_words(self) -> int:
        return len(self.rx_fifo)

    def inject_words(self, words: Iterable[int]) -> int:
        """
        Place words straight into the receive FIFO, bypassing the cable.

        Returns:
            Number of words accepted; the rest set the overflow flag
        """
        accepted = 0
        for word in words:
            if len(self.rx_fifo) >= self.rx_capacity:
                self.rx_overflow = True
                break
            self.rx_fifo.append(word & 0xFFFFFFFF)
            accepted += 1
        return accepted

    def get_statistics(self) -> dict:
        return {
            'words_pushed': self.words_pushed,
            'words_popped': self.words_popped,
            'push_rejections': self.push_rejections,
            'tx_queued': len(self.tx_fifo),
            'rx_queued': len(self.rx_fifo),
            'configure_calls': self.configure_calls,
            'error_clears': self.error_clears
        }


class LinkCable:
    """
    Two endpoints joined by a lossy in-memory cable.

    Words move from one endpoint's TX FIFO to the other's RX FIFO while
    there is room; when the receiving FIFO is full they wait in TX.

    Attributes:
        a: First endpoint
        b: Second endpoint
        drop_rate: Probability that a word is lost in transit
        channel: Optional burst-error channel corrupting words in transit
        stalled: When True no words cross the cable
        plugged: When False words in transit are lost
    """

    def __init__(
        self,
        drop_rate: float = 0.0,
        channel: Optional[GilbertElliottChannel] = None,
        tx_capacity: int = TX_FIFO_WORDS,
        rx_capacity: int = RX_FIFO_WORDS,
        auto_transfer: bool = True,
        seed: Optional[int] = None
    ):
        """
        Initialize link cable.

        Args:
            drop_rate: Per-word loss probability
            channel: Gilbert-Elliott channel for bit errors (None disables)
            tx_capacity: TX FIFO size per endpoint, in words
            rx_capacity: RX FIFO size per endpoint, in words
            auto_transfer: Move words on every push and status read
            seed: Random seed for word drops
        """
        self.drop_rate = drop_rate
        self.channel = channel
        self.auto_transfer = auto_transfer
        self.rng = np.random.default_rng(seed)

        self.stalled = False
        self.plugged = True

        self.a = CableEndpoint(self, "A", tx_capacity, rx_capacity)
        self.b = CableEndpoint(self, "B", tx_capacity, rx_capacity)

        # Statistics
        self.words_delivered = 0
        self.words_dropped = 0
        self.words_corrupted = 0
        self.words_lost_unplugged = 0

        # Reentrancy flag for service()
        self._servicing = False

    @property
    def endpoints(self) -> List[CableEndpoint]:
        return [self.a, self.b]

    def peer_of(self, endpoint: CableEndpoint) -> CableEndpoint:
        return self.b if endpoint is self.a else self.a

    def unplug(self):
        self.plugged = False

    def plug(self):
        self.plugged = True

    def service(self) -> int:
        """
        Move as many words as possible across the cable in both directions.

        Returns:
            Number of words taken out of TX FIFOs
        """
        if self._servicing or self.stalled:
            return 0

        self._servicing = True
        try:
            moved = 0
            for source in self.endpoints:
                moved += self._transfer(source, self.peer_of(source))
            return moved
        finally:
            self._servicing = False

    def _transfer(self, source: CableEndpoint, dest: CableEndpoint) -> int:
        moved = 0
        while source.tx_fifo:
            if not self.plugged:
                source.tx_fifo.popleft()
                self.words_lost_unplugged += 1
                moved += 1
                continue

            if not dest.enabled:
                break
            if len(dest.rx_fifo) >= dest.rx_capacity:
                break

            word = source.tx_fifo.popleft()
            moved += 1

            if self.drop_rate > 0 and self.rng.random() < self.drop_rate:
                self.words_dropped += 1
                continue

            if self.channel is not None:
                word, bit_errors = self.channel.transmit_word(word)
                if bit_errors:
                    self.words_corrupted += 1
                    dest.rx_crc_error = True

            dest.rx_fifo.append(word)
            self.words_delivered += 1

        return moved

    def get_statistics(self) -> dict:
        """Get cable statistics."""
        stats = {
            'words_delivered': self.words_delivered,
            'words_dropped': self.words_dropped,
            'words_corrupted': self.words_corrupted,
            'words_lost_unplugged': self.words_lost_unplugged,
            'a': self.a.get_statistics(),
            'b': self.b.get_statistics()
        }
        if self.channel is not None:
            stats['channel'] = self.channel.get_statistics()
        return stats


if __name__ == "__main__":
    print("=" * 60)
    print("LINK CABLE TEST")
    print("=" * 60)

    cable = LinkCable(drop_rate=0.1, seed=42)
    for endpoint in cable.endpoints:
        endpoint.configure(enable=True, clear_errors=True, flush_rx=True, flush_tx=True)

    for i in range(100):
        cable.a.push_word(i)

    received = []
    while True:
        word = cable.b.pop_word()
        if word is None:
            break
        received.append(word)

    print(f"\nSent 100 words, received {len(received)}")
    print(f"Status B: {cable.b.read_status()} (0x{cable.b.read_status().to_register():02X})")
    print(f"Statistics: {cable.get_statistics()}")
