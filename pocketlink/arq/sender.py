"""
Stop-and-Wait Reliable Sender

This module implements the sending half of reliable delivery: a single
outstanding message, its retry timer and the transmit sequence number.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pocketlink.config import MAX_PAYLOAD, MAX_RETRIES, RETRY_INTERVAL
from .frame import Frame
from .timer import RetryTimer


class RetryAction(Enum):
    """What the retry check asks the session to do."""
    NONE = 0
    RETRANSMIT = 1
    EXHAUSTED = 2


@dataclass
class PendingReliable:
    """
    The one reliable message awaiting acknowledgement.

    Attributes:
        seq: Sequence number the message was sent with
        payload: Message bytes (kept for retransmission)
        timer: Retry timer; its start time is the last send time
    """
    seq: int
    payload: bytes
    timer: RetryTimer

    @property
    def sent_at(self) -> float:
        return self.timer.start_time

    @property
    def retry_count(self) -> int:
        return self.timer.retransmit_count

    def to_frame(self) -> Frame:
        return Frame.create_reliable(self.seq, self.payload)


class ReliableSender:
    """
    Stop-and-wait sender.

    The transmit sequence number advances (modulo 256) only when the pending
    message is acknowledged.

    Attributes:
        retry_interval: Seconds between retransmissions
        max_retries: Retransmissions allowed before giving up
        tx_seq: Sequence number of the next (or pending) message
        pending: Outstanding message, if any
    """

    def __init__(
        self,
        retry_interval: float = RETRY_INTERVAL,
        max_retries: int = MAX_RETRIES
    ):
        """
        Initialize sender.

        Args:
            retry_interval: Retransmit period in seconds
            max_retries: Maximum retransmissions per message
        """
        self.retry_interval = retry_interval
        self.max_retries = max_retries

        self.tx_seq = 0
        self.pending: Optional[PendingReliable] = None

        # Statistics
        self.frames_sent = 0
        self.frames_acked = 0
        self.retransmissions = 0
        self.stale_acks = 0
        self.total_bytes_sent = 0

    def can_send(self) -> bool:
        """True when no message is awaiting acknowledgement."""
        return self.pending is None

    def create_frame(self, payload: bytes) -> Frame:
        """
        Build the RELIABLE frame for a new message without committing it.

        Raises:
            ValueError: If the payload exceeds MAX_PAYLOAD
        """
        if len(payload) > MAX_PAYLOAD:
            raise ValueError(f"Payload too large ({len(payload)} > {MAX_PAYLOAD} bytes)")
        return Frame.create_reliable(self.tx_seq, payload)

    def start_pending(self, payload: bytes, current_time: float) -> PendingReliable:
        """
        Record a transmitted message as pending.

        Args:
            payload: Message bytes
            current_time: Time of the first transmission

        Returns:
            The new pending record
        """
        timer = RetryTimer(interval=self.retry_interval)
        timer.start(current_time)
        self.pending = PendingReliable(seq=self.tx_seq, payload=bytes(payload), timer=timer)

        self.frames_sent += 1
        self.total_bytes_sent += len(payload)
        return self.pending

    def process_ack(self, ack_seq: int) -> bool:
        """
        Process a RELIABLE_ACK.

        Args:
            ack_seq: Acknowledged sequence number

        Returns:
            True if the ACK released the pending message
        """
        if self.pending is None or ack_seq != self.pending.seq:
            self.stale_acks += 1
            return False

        self.pending = None
        self.tx_seq = (self.tx_seq + 1) & 0xFF
        self.frames_acked += 1
        return True

    def check_retry(self, current_time: float) -> RetryAction:
        """
        Decide whether the pending message needs attention.

        Args:
            current_time: Current clock value

        Returns:
            RETRANSMIT when the retry interval elapsed with retries left,
            EXHAUSTED when it elapsed with none left, NONE otherwise
        """
        if self.pending is None:
            return RetryAction.NONE
        if not self.pending.timer.check_expired(current_time):
            return RetryAction.NONE
        if self.pending.retry_count >= self.max_retries:
            return RetryAction.EXHAUSTED
        return RetryAction.RETRANSMIT

    def retransmit(self, current_time: float) -> Frame:
        """
        Restart the retry timer and return the identical frame to resend.

        The retry count grows whether or not the resend reaches the wire.
        """
        if self.pending is None:
            raise RuntimeError("No pending message to retransmit")

        self.pending.timer.restart(current_time)
        self.retransmissions += 1
        return self.pending.to_frame()

    def drop_pending(self):
        """Forget the pending message without advancing tx_seq."""
        if self.pending is not None:
            self.pending.timer.stop()
        self.pending = None

    def reset(self):
        """Drop the pending message and rewind the sequence number."""
        self.tx_seq = 0
        self.pending = None

    def get_statistics(self) -> dict:
        """Get sender statistics."""
        return {
            'frames_sent': self.frames_sent,
            'frames_acked': self.frames_acked,
            'retransmissions': self.retransmissions,
            'stale_acks': self.stale_acks,
            'total_bytes_sent': self.total_bytes_sent,
            'tx_seq': self.tx_seq,
            'pending': self.pending is not None
        }


if __name__ == "__main__":
    print("=" * 60)
    print("RELIABLE SENDER TEST")
    print("=" * 60)

    sender = ReliableSender(retry_interval=0.05, max_retries=3)
    frame = sender.create_frame(b"hello")
    sender.start_pending(b"hello", 0.0)
    print(f"\nSent: {frame}")

    t = 0.0
    while True:
        t += 0.05
        action = sender.check_retry(t)
        if action == RetryAction.RETRANSMIT:
            print(f"  t={t:.2f}: retransmit {sender.retransmit(t)}")
        elif action == RetryAction.EXHAUSTED:
            print(f"  t={t:.2f}: retries exhausted")
            break

    print(f"\nStatistics: {sender.get_statistics()}")
