"""
Stop-and-Wait Reliable Receiver

This module implements the receiving half of reliable delivery: in-order
acceptance, duplicate suppression and ACK generation.
"""

from typing import Callable, Optional

from .frame import Frame


class ReliableReceiver:
    """
    Stop-and-wait receiver.

    Sequence numbers are compared only for equality with rx_seq or with
    rx_seq - 1 (modulo 256); nothing else carries ordering meaning.

    Attributes:
        rx_seq: Next expected sequence number
        on_data_delivered: Callback receiving (payload, seq); returning
            False refuses the message
    """

    def __init__(
        self,
        on_data_delivered: Optional[Callable[[bytes, int], bool]] = None
    ):
        """
        Initialize receiver.

        Args:
            on_data_delivered: Delivery callback, normally the receive
                queue's add()
        """
        self.on_data_delivered = on_data_delivered
        self.rx_seq = 0

        # Statistics
        self.frames_received = 0
        self.frames_delivered = 0
        self.duplicate_frames = 0
        self.out_of_sequence_frames = 0
        self.refused_frames = 0
        self.acks_generated = 0
        self.total_delivered_bytes = 0

    @property
    def last_delivered_seq(self) -> int:
        """Sequence number of the most recently delivered message."""
        return (self.rx_seq - 1) & 0xFF

    def receive_frame(self, frame: Frame) -> Optional[Frame]:
        """
        Process a checksum-valid RELIABLE frame.

        Args:
            frame: Received frame

        Returns:
            The ACK frame to send, or None when delivery was refused
        """
        self.frames_received += 1
        seq = frame.seq

        if seq == self.rx_seq:
            if self.on_data_delivered and not self.on_data_delivered(frame.payload, seq):
                self.refused_frames += 1
                return None

            self.rx_seq = (self.rx_seq + 1) & 0xFF
            self.frames_delivered += 1
            self.total_delivered_bytes += len(frame.payload)
            return self._generate_ack(seq)

        if seq == self.last_delivered_seq:
            # Our ACK was lost; confirm again
            self.duplicate_frames += 1
            return self._generate_ack(seq)

        self.out_of_sequence_frames += 1
        return self._generate_ack(self.last_delivered_seq)

    def _generate_ack(self, seq: int) -> Frame:
        self.acks_generated += 1
        return Frame.create_ack(seq)

    def reset(self):
        """Rewind the expected sequence number."""
        self.rx_seq = 0

    def get_statistics(self) -> dict:
        """Get receiver statistics."""
        return {
            'frames_received': self.frames_received,
            'frames_delivered': self.frames_delivered,
            'duplicate_frames': self.duplicate_frames,
            'out_of_sequence_frames': self.out_of_sequence_frames,
            'refused_frames': self.refused_frames,
            'acks_generated': self.acks_generated,
            'total_delivered_bytes': self.total_delivered_bytes,
            'rx_seq': self.rx_seq
        }


if __name__ == "__main__":
    print("=" * 60)
    print("RELIABLE RECEIVER TEST")
    print("=" * 60)

    delivered = []

    def deliver(payload, seq):
        delivered.append(payload)
        print(f"  [DELIVERED] seq={seq}: {payload!r}")
        return True

    receiver = ReliableReceiver(on_data_delivered=deliver)
    for seq, data in [(0, b"a"), (0, b"a"), (1, b"b"), (5, b"x"), (2, b"c")]:
        ack = receiver.receive_frame(Frame.create_reliable(seq, data))
        print(f"  RX seq={seq} -> {ack}")

    print(f"\nStatistics: {receiver.get_statistics()}")
