"""
Frame Codec for the PocketLink transport

This module defines the word-oriented wire frame, the CRC-16 integrity
checksum and the helpers used to build and take apart frames.

Frame layout (32-bit transport words):
    Word0        = FRAME_MAGIC (0x51464D45)
    Word1[31:24] = type, Word1[23:16] = seq, Word1[15:0] = payload length
    Word2[15:0]  = CRC-16 over type, seq, len_lo, len_hi, payload
    Word3..      = payload, little-endian, zero-padded to a word boundary
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple

from pocketlink.config import FRAME_MAGIC, MAX_PAYLOAD, WORD_BYTES, frame_words

CRC16_POLY = 0x1021
CRC16_INIT = 0xFFFF


class FrameType(IntEnum):
    """Packet type carried in the top byte of the header word."""
    HELLO = 1
    HELLO_ACK = 2
    RELIABLE = 3
    RELIABLE_ACK = 4
    UNRELIABLE = 5
    KEEPALIVE = 6
    RESET = 7


def crc16_update(crc: int, data: int) -> int:
    """
    Feed one byte into the CRC-16 (poly 0x1021, MSB first).

    Args:
        crc: Running 16-bit checksum
        data: Byte to process

    Returns:
        Updated checksum
    """
    crc ^= (data & 0xFF) << 8
    for _ in range(8):
        if crc & 0x8000:
            crc = ((crc << 1) ^ CRC16_POLY) & 0xFFFF
        else:
            crc = (crc << 1) & 0xFFFF
    return crc


def compute_checksum(frame_type: int, seq: int, payload: bytes) -> int:
    """
    Compute the frame checksum.

    The CRC covers [type, seq, len_lo, len_hi, payload...] with initial
    value 0xFFFF and no final XOR.

    Args:
        frame_type: Packet type
        seq: Sequence number
        payload: Payload bytes

    Returns:
        16-bit checksum
    """
    length = len(payload)
    crc = CRC16_INIT
    for byte in (frame_type & 0xFF, seq & 0xFF, length & 0xFF, (length >> 8) & 0xFF):
        crc = crc16_update(crc, byte)
    for byte in payload:
        crc = crc16_update(crc, byte)
    return crc


def pack_header(frame_type: int, seq: int, length: int) -> int:
    """Pack type, seq and payload length into the header word."""
    if not 0 <= frame_type <= 0xFF:
        raise ValueError(f"Frame type out of range: {frame_type}")
    if not 0 <= seq <= 0xFF:
        raise ValueError(f"Sequence number out of range: {seq}")
    if not 0 <= length <= 0xFFFF:
        raise ValueError(f"Payload length out of range: {length}")
    return (frame_type << 24) | (seq << 16) | length


def unpack_header(word: int) -> Tuple[int, int, int]:
    """
    Split a header word.

    Returns:
        Tuple of (type, seq, payload_len)
    """
    return (word >> 24) & 0xFF, (word >> 16) & 0xFF, word & 0xFFFF


def encode_payload_words(payload: bytes) -> List[int]:
    """Pack payload bytes into little-endian words, zero padding the last one."""
    words = []
    for offset in range(0, len(payload), WORD_BYTES):
        chunk = payload[offset:offset + WORD_BYTES]
        words.append(int.from_bytes(chunk.ljust(WORD_BYTES, b'\x00'), 'little'))
    return words


def decode_payload_word(
    word: int,
    byte_offset: int,
    declared_len: int,
    buffer: bytearray
) -> int:
    """
    Unpack one payload word into the receive buffer.

    Bytes at or beyond declared_len are padding and are discarded.

    Args:
        word: Transport word
        byte_offset: Position of the word's first byte in the payload
        declared_len: Payload length announced in the header
        buffer: Destination buffer (at least declared_len bytes)

    Returns:
        Number of bytes written
    """
    written = 0
    for i in range(WORD_BYTES):
        position = byte_offset + i
        if position >= declared_len:
            break
        buffer[position] = (word >> (8 * i)) & 0xFF
        written += 1
    return written


def encode_frame(frame_type: int, seq: int, payload: bytes = b'') -> List[int]:
    """
    Build the word sequence for a frame.

    Args:
        frame_type: Packet type
        seq: Sequence number (0-255)
        payload: Payload bytes (at most MAX_PAYLOAD)

    Returns:
        [magic, header, checksum, payload words...]

    Raises:
        ValueError: If the payload exceeds MAX_PAYLOAD
    """
    if len(payload) > MAX_PAYLOAD:
        raise ValueError(f"Payload too large ({len(payload)} > {MAX_PAYLOAD} bytes)")

    header = pack_header(frame_type, seq, len(payload))
    checksum = compute_checksum(frame_type, seq, payload)
    return [FRAME_MAGIC, header, checksum] + encode_payload_words(payload)


@dataclass
class Frame:
    """
    One protocol frame.

    Attributes:
        frame_type: Packet type (a FrameType value, or the raw byte for
            types this implementation does not know)
        seq: Sequence number (0-255)
        payload: Payload bytes
    """

    frame_type: int
    seq: int = 0
    payload: bytes = b''

    def __post_init__(self):
        """Validate frame after initialization."""
        if not 0 <= self.seq <= 0xFF:
            raise ValueError(f"Sequence number must fit in a byte: {self.seq}")
        if len(self.payload) > MAX_PAYLOAD:
            raise ValueError(f"Payload too large (max {MAX_PAYLOAD} bytes)")
        self.payload = bytes(self.payload)

    @property
    def checksum(self) -> int:
        """CRC-16 of this frame."""
        return compute_checksum(self.frame_type, self.seq, self.payload)

    @property
    def word_count(self) -> int:
        """Number of transport words on the wire."""
        return frame_words(len(self.payload))

    @property
    def type_name(self) -> str:
        """Readable type name, tolerant of unknown types."""
        try:
            return FrameType(self.frame_type).name
        except ValueError:
            return f"TYPE_{self.frame_type}"

    def encode(self) -> List[int]:
        """Encode the frame into transport words."""
        return encode_frame(self.frame_type, self.seq, self.payload)

    @classmethod
    def decode(cls, words: Sequence[int]) -> Tuple[Optional['Frame'], bool]:
        """
        Decode a complete word sequence.

        Args:
            words: Words starting with the magic word

        Returns:
            Tuple of (Frame or None, checksum valid)
        """
        if len(words) < 3 or words[0] != FRAME_MAGIC:
            return None, False

        frame_type, seq, length = unpack_header(words[1])
        if length > MAX_PAYLOAD:
            return None, False

        body = words[3:]
        if len(body) * WORD_BYTES < length:
            return None, False

        buffer = bytearray(length)
        for index, word in enumerate(body[:frame_words(length) - 3]):
            decode_payload_word(word, index * WORD_BYTES, length, buffer)

        frame = cls(frame_type=frame_type, seq=seq, payload=bytes(buffer))
        return frame, frame.checksum == (words[2] & 0xFFFF)

    @classmethod
    def create_hello(cls) -> 'Frame':
        return cls(FrameType.HELLO)

    @classmethod
    def create_hello_ack(cls) -> 'Frame':
        return cls(FrameType.HELLO_ACK)

    @classmethod
    def create_reliable(cls, seq: int, payload: bytes) -> 'Frame':
        return cls(FrameType.RELIABLE, seq, payload)

    @classmethod
    def create_ack(cls, seq: int) -> 'Frame':
        """
        Create a RELIABLE_ACK frame.

        Args:
            seq: Sequence number being acknowledged

        Returns:
            ACK frame
        """
        return cls(FrameType.RELIABLE_ACK, seq)

    @classmethod
    def create_unreliable(cls, payload: bytes) -> 'Frame':
        return cls(FrameType.UNRELIABLE, 0, payload)

    @classmethod
    def create_keepalive(cls) -> 'Frame':
        return cls(FrameType.KEEPALIVE)

    @classmethod
    def create_reset(cls) -> 'Frame':
        return cls(FrameType.RESET)

    def __repr__(self) -> str:
        return (f"Frame(type={self.type_name}, seq={self.seq}, "
                f"payload_len={len(self.payload)})")


if __name__ == "__main__":
    print("=" * 60)
    print("FRAME CODEC TEST")
    print("=" * 60)

    frame = Frame.create_reliable(seq=7, payload=b"\x01\x02\x03")
    words = frame.encode()
    print(f"\n{frame}")
    for word in words:
        print(f"  0x{word:08X}")

    decoded, crc_valid = Frame.decode(words)
    print(f"\nDecoded: {decoded}")
    print(f"  CRC valid: {crc_valid}")
