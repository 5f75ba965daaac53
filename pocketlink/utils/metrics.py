"""
Metrics Collection and Calculation

This module provides the per-session link counters and the transfer
metrics (goodput, efficiency, message latency) used by the simulator.
"""

import statistics
from dataclasses import dataclass, asdict, fields
from typing import Dict, List, Optional

from pocketlink.config import WORD_BYTES


@dataclass
class LinkStatistics:
    """
    Counters kept by a link session.

    Attributes mirror events on the session; the parser, sender, receiver
    and queue keep their own counters, merged in LinkSession.get_statistics().
    """
    frames_transmitted: int = 0
    words_transmitted: int = 0
    transmit_failures: int = 0
    hellos_sent: int = 0
    hello_acks_sent: int = 0
    keepalives_sent: int = 0
    resets_sent: int = 0
    acks_sent: int = 0
    frames_received: int = 0
    unknown_frames: int = 0
    unreliable_received: int = 0
    unreliable_dropped: int = 0
    unreliable_sent: int = 0
    polls: int = 0
    handshakes_completed: int = 0
    error_clears: int = 0

    def record_transmit(self, word_count: int):
        self.frames_transmitted += 1
        self.words_transmitted += word_count

    def reset(self):
        """Zero every counter."""
        for item in fields(self):
            setattr(self, item.name, 0)

    def get_statistics(self) -> dict:
        return asdict(self)


class TransferMetrics:
    """
    Goodput and latency of a message transfer.

    Goodput = Delivered Application Bytes / Total Transfer Time

    Attributes:
        start_time: Transfer start time
        end_time: Transfer end time
    """

    def __init__(self):
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        self.application_bytes_sent = 0
        self.application_bytes_delivered = 0
        self.messages_sent = 0
        self.messages_delivered = 0
        self.words_transmitted = 0

        # Send-to-delivery latency samples
        self.latency_samples: List[float] = []

    def start(self, time: float):
        """Mark transfer start."""
        self.start_time = time

    def finish(self, time: float):
        """Mark transfer end."""
        self.end_time = time

    def record_message_sent(self, payload_bytes: int):
        self.application_bytes_sent += payload_bytes
        self.messages_sent += 1

    def record_message_delivered(self, payload_bytes: int, latency: Optional[float] = None):
        """
        Record a message handed to the receiving application.

        Args:
            payload_bytes: Delivered payload bytes
            latency: Seconds between first send and delivery
        """
        self.application_bytes_delivered += payload_bytes
        self.messages_delivered += 1
        if latency is not None:
            self.latency_samples.append(latency)

    @property
    def total_time(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return self.end_time - self.start_time

    def calculate_goodput(self) -> float:
        """
        Calculate Goodput.

        Returns:
            Goodput in bytes per second
        """
        if self.total_time <= 0:
            return 0.0
        return self.application_bytes_delivered / self.total_time

    def calculate_efficiency(self) -> float:
        """
        Calculate transmission efficiency.

        Efficiency = Application Bytes Delivered / Bytes Put On The Wire

        Returns:
            Efficiency ratio (0-1)
        """
        wire_bytes = self.words_transmitted * WORD_BYTES
        if wire_bytes <= 0:
            return 0.0
        return self.application_bytes_delivered / wire_bytes

    def get_latency_statistics(self) -> Dict[str, float]:
        """
        Get latency statistics.

        Returns:
            Dictionary with min, max, mean, median, stdev latency
        """
        if not self.latency_samples:
            return {'min': 0, 'max': 0, 'mean': 0, 'median': 0, 'stdev': 0, 'samples': 0}

        return {
            'min': min(self.latency_samples),
            'max': max(self.latency_samples),
            'mean': statistics.mean(self.latency_samples),
            'median': statistics.median(self.latency_samples),
            'stdev': statistics.stdev(self.latency_samples) if len(self.latency_samples) > 1 else 0,
            'samples': len(self.latency_samples)
        }

    def get_summary(self) -> Dict:
        """Get metrics summary."""
        return {
            'total_time': self.total_time,
            'goodput': self.calculate_goodput(),
            'goodput_bps': self.calculate_goodput() * 8,
            'efficiency': self.calculate_efficiency(),
            'application_bytes_sent': self.application_bytes_sent,
            'application_bytes_delivered': self.application_bytes_delivered,
            'messages_sent': self.messages_sent,
            'messages_delivered': self.messages_delivered,
            'words_transmitted': self.words_transmitted,
            'latency': self.get_latency_statistics()
        }


if __name__ == "__main__":
    print("=" * 60)
    print("TRANSFER METRICS TEST")
    print("=" * 60)

    metrics = TransferMetrics()
    metrics.start(0.0)
    for i in range(10):
        metrics.record_message_sent(256)
        metrics.record_message_delivered(256, latency=0.01 + i * 0.001)
    metrics.words_transmitted = 10 * (3 + 64) + 10 * 3
    metrics.finish(0.5)

    summary = metrics.get_summary()
    print(f"\nGoodput: {summary['goodput']:.1f} B/s")
    print(f"Efficiency: {summary['efficiency'] * 100:.1f}%")
    print(f"Latency: {summary['latency']}")
