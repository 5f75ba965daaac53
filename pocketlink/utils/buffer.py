"""
Receive Queue

This module provides the byte-bounded queue that holds delivered messages
until the application reads them.
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from pocketlink.config import RECEIVE_QUEUE_CAPACITY, WORD_BYTES

# Per-message bookkeeping charged against the capacity
ENTRY_OVERHEAD = 4


class MessageKind(IntEnum):
    """How a queued message arrived."""
    RELIABLE = 1
    UNRELIABLE = 2


@dataclass
class ReceivedMessage:
    """Message waiting in the receive queue."""
    kind: MessageKind
    payload: bytes

    @property
    def cost(self) -> int:
        return entry_cost(len(self.payload))


def entry_cost(length: int) -> int:
    """Bytes a message of the given length occupies: align4(len + 4)."""
    raw = length + ENTRY_OVERHEAD
    return (raw + WORD_BYTES - 1) & ~(WORD_BYTES - 1)


class MessageQueue:
    """
    FIFO of received messages with a fixed byte capacity.

    Attributes:
        capacity: Maximum space in bytes
        current_size: Space in use in bytes
        buffer: Queue of messages
    """

    def __init__(self, capacity: int = RECEIVE_QUEUE_CAPACITY):
        """
        Initialize receive queue.

        Args:
            capacity: Maximum queue size in bytes
        """
        self.capacity = capacity
        self.buffer: deque = deque()
        self.current_size = 0

        # Statistics
        self.total_messages_queued = 0
        self.total_bytes_queued = 0
        self.overflow_events = 0

    @property
    def available_space(self) -> int:
        return self.capacity - self.current_size

    @property
    def is_empty(self) -> bool:
        return len(self.buffer) == 0

    @property
    def fill_level(self) -> float:
        """Get queue fill level (0-1)."""
        return self.current_size / self.capacity if self.capacity > 0 else 0

    def __len__(self) -> int:
        return len(self.buffer)

    def can_accept(self, length: int) -> bool:
        """Check if a message of the given length would fit."""
        return self.current_size + entry_cost(length) <= self.capacity

    def add(self, payload: bytes, kind: MessageKind = MessageKind.RELIABLE) -> bool:
        """
        Append a message.

        Args:
            payload: Message bytes
            kind: Reliable or unreliable

        Returns:
            True if the message was queued, False if the queue is full
        """
        if not self.can_accept(len(payload)):
            self.overflow_events += 1
            return False

        message = ReceivedMessage(kind=MessageKind(kind), payload=bytes(payload))
        self.buffer.append(message)
        self.current_size += message.cost

        self.total_messages_queued += 1
        self.total_bytes_queued += len(payload)
        return True

    def get(self) -> Optional[ReceivedMessage]:
        """
        Remove and return the oldest message.

        Returns:
            ReceivedMessage or None if empty
        """
        if self.is_empty:
            return None

        message = self.buffer.popleft()
        self.current_size -= message.cost
        return message

    def peek(self) -> Optional[ReceivedMessage]:
        """Return the oldest message without removing it."""
        if self.is_empty:
            return None
        return self.buffer[0]

    def clear(self):
        """Discard every queued message."""
        self.buffer.clear()
        self.current_size = 0

    def get_statistics(self) -> dict:
        """Get queue statistics."""
        return {
            'capacity': self.capacity,
            'current_size': self.current_size,
            'available_space': self.available_space,
            'fill_level': self.fill_level,
            'messages_queued': len(self.buffer),
            'total_messages_queued': self.total_messages_queued,
            'total_bytes_queued': self.total_bytes_queued,
            'overflow_events': self.overflow_events
        }


if __name__ == "__main__":
    print("=" * 60)
    print("RECEIVE QUEUE TEST")
    print("=" * 60)

    queue = MessageQueue(capacity=256)
    print(f"\nQueue capacity: {queue.capacity} bytes")

    for i in range(8):
        result = queue.add(bytes([i] * 50))
        print(f"  Add message {i}: {'OK' if result else 'FULL'}, "
              f"fill: {queue.fill_level * 100:.1f}%")

    while not queue.is_empty:
        message = queue.get()
        print(f"  Got {message.kind.name} message, {len(message.payload)} bytes")

    print(f"\nFinal stats: {queue.get_statistics()}")
