"""
Incremental Receive Parser

This module reassembles frames from the transport word stream one word at
a time, so that a poll call can stop after a fixed budget and resume on the
next call without losing its place.
"""

from enum import Enum
from typing import Optional

from pocketlink.config import FRAME_MAGIC, MAX_PAYLOAD, WORD_BYTES, payload_words
from .frame import Frame, compute_checksum, decode_payload_word, unpack_header


class ParserState(Enum):
    """Receive parser state enumeration."""
    WAIT_MAGIC = 0
    WAIT_HEADER = 1
    WAIT_CRC = 2
    WAIT_PAYLOAD = 3


class ReceiveParser:
    """
    Word-at-a-time frame parser.

    Any malformed header or checksum failure returns the parser to
    WAIT_MAGIC, so the stream resynchronises at the next magic word.

    Attributes:
        state: Current parser state
        frame_type: Type byte of the frame being assembled
        seq: Sequence byte of the frame being assembled
        declared_len: Payload length from the header
        expected_crc: Checksum word captured from the stream
        words_needed: Payload words expected
        words_seen: Payload words received so far
    """

    def __init__(self, max_payload: int = MAX_PAYLOAD):
        """
        Initialize parser.

        Args:
            max_payload: Largest payload length accepted in a header
        """
        self.max_payload = max_payload
        self.payload_buffer = bytearray(max_payload)

        # Statistics
        self.words_consumed = 0
        self.frames_parsed = 0
        self.crc_failures = 0
        self.oversize_headers = 0
        self.last_crc_failure: Optional[dict] = None

        self.reset()

    def reset(self):
        """Re-arm the parser to wait for the next magic word."""
        self.state = ParserState.WAIT_MAGIC
        self.frame_type = 0
        self.seq = 0
        self.declared_len = 0
        self.expected_crc = 0
        self.words_needed = 0
        self.words_seen = 0

    def consume_word(self, word: int) -> Optional[Frame]:
        """
        Advance the state machine by one transport word.

        Args:
            word: 32-bit word popped from the transport

        Returns:
            The completed frame if this word finished a checksum-valid
            frame, otherwise None
        """
        self.words_consumed += 1
        word &= 0xFFFFFFFF

        if self.state == ParserState.WAIT_MAGIC:
            if word == FRAME_MAGIC:
                self.state = ParserState.WAIT_HEADER
            return None

        if self.state == ParserState.WAIT_HEADER:
            self.frame_type, self.seq, self.declared_len = unpack_header(word)
            if self.declared_len > self.max_payload:
                # Corrupted length field
                self.oversize_headers += 1
                self.reset()
                return None

            self.words_needed = payload_words(self.declared_len)
            self.words_seen = 0
            self.state = ParserState.WAIT_CRC
            return None

        if self.state == ParserState.WAIT_CRC:
            self.expected_crc = word & 0xFFFF
            if self.words_needed == 0:
                return self._complete()
            self.state = ParserState.WAIT_PAYLOAD
            return None

        # WAIT_PAYLOAD
        decode_payload_word(
            word,
            self.words_seen * WORD_BYTES,
            self.declared_len,
            self.payload_buffer
        )
        self.words_seen += 1
        if self.words_seen < self.words_needed:
            return None
        return self._complete()

    def _complete(self) -> Optional[Frame]:
        """Validate the assembled frame and re-arm the parser."""
        payload = bytes(self.payload_buffer[:self.declared_len])
        actual_crc = compute_checksum(self.frame_type, self.seq, payload)

        frame = None
        if actual_crc == self.expected_crc:
            frame = Frame(frame_type=self.frame_type, seq=self.seq, payload=payload)
            self.frames_parsed += 1
        else:
            self.crc_failures += 1
            self.last_crc_failure = {
                'type': self.frame_type,
                'length': self.declared_len,
                'got': self.expected_crc,
                'want': actual_crc
            }

        self.reset()
        return frame

    @property
    def in_frame(self) -> bool:
        """True while part of a frame has been consumed."""
        return self.state != ParserState.WAIT_MAGIC

    def get_statistics(self) -> dict:
        """Get parser statistics."""
        return {
            'words_consumed': self.words_consumed,
            'frames_parsed': self.frames_parsed,
            'crc_failures': self.crc_failures,
            'oversize_headers': self.oversize_headers
        }
