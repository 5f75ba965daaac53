"""
Transmission Guard

Writes whole frames into the transport's TX FIFO, one word at a time,
and refuses to start a frame while another is being written.
"""

from typing import List

from pocketlink.arq.frame import Frame
from pocketlink.config import FRAME_HEADER_WORDS, TX_WAIT_BUDGET
from .physical_layer import Transport


class TransmissionGuard:
    """
    Frame writer with a reentrancy flag.

    There is no outbound queue: a frame either goes into the TX FIFO now
    or the caller is told it did not. A failure part way through leaves a
    truncated frame on the wire which the receiver's parser skips.

    Attributes:
        transport: Word transport to write into
        wait_budget: Status polls allowed per wait for FIFO space
        in_progress: True while a frame is being written
    """

    def __init__(self, transport: Transport, wait_budget: int = TX_WAIT_BUDGET):
        self.transport = transport
        self.wait_budget = wait_budget
        self.in_progress = False

        # Statistics
        self.frames_sent = 0
        self.words_sent = 0
        self.guard_rejections = 0
        self.space_timeouts = 0
        self.truncated_frames = 0

    def wait_for_space(self, words: int) -> bool:
        """
        Poll the transport until the TX FIFO has room for `words`.

        Args:
            words: Words about to be pushed

        Returns:
            True if the space appeared within the wait budget
        """
        for _ in range(self.wait_budget):
            if self.transport.read_status().tx_full:
                continue
            if self.transport.tx_free_words() >= words:
                return True
        self.space_timeouts += 1
        return False

    def try_send(self, frame: Frame) -> bool:
        """
        Write a frame into the transport.

        Args:
            frame: Frame to transmit

        Returns:
            True if every word of the frame was accepted
        """
        if self.in_progress:
            self.guard_rejections += 1
            return False

        self.in_progress = True
        try:
            words = frame.encode()
            pushed = self._push_words(words)
        finally:
            self.in_progress = False

        if pushed == len(words):
            self.frames_sent += 1
            return True

        if pushed > 0:
            self.truncated_frames += 1
        return False

    def _push_words(self, words: List[int]) -> int:
        """Push header then payload words; returns how many went out."""
        if not self.wait_for_space(FRAME_HEADER_WORDS):
            return 0

        pushed = 0
        for index, word in enumerate(words):
            if index >= FRAME_HEADER_WORDS and not self.wait_for_space(1):
                break
            if not self.transport.push_word(word):
                break
            pushed += 1
            self.words_sent += 1
        return pushed

    def get_statistics(self) -> dict:
        return {
            'frames_sent': self.frames_sent,
            'words_sent': self.words_sent,
            'guard_rejections': self.guard_rejections,
            'space_timeouts': self.space_timeouts,
            'truncated_frames': self.truncated_frames
        }
