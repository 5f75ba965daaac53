"""
Retry Timers for the PocketLink transport

This module provides the interval timer used for reliable retransmission
and for HELLO retransmission during the handshake.
"""

from dataclasses import dataclass
from enum import Enum


class TimerState(Enum):
    """Timer state enumeration."""
    STOPPED = 0
    RUNNING = 1
    EXPIRED = 2


@dataclass
class RetryTimer:
    """
    Interval timer that counts its restarts.

    Attributes:
        interval: Period in seconds
        start_time: Time when the timer was (re)started
        state: Current timer state
        retransmit_count: Number of restarts since the last start()
    """
    interval: float
    start_time: float = 0.0
    state: TimerState = TimerState.STOPPED
    retransmit_count: int = 0

    def start(self, current_time: float):
        """
        Start the timer and clear the restart count.

        Args:
            current_time: Current clock value
        """
        self.start_time = current_time
        self.state = TimerState.RUNNING
        self.retransmit_count = 0

    def stop(self):
        """Stop the timer."""
        self.state = TimerState.STOPPED

    def restart(self, current_time: float):
        """
        Restart the timer after a retransmission.

        Args:
            current_time: Current clock value
        """
        self.start_time = current_time
        self.state = TimerState.RUNNING
        self.retransmit_count += 1

    def check_expired(self, current_time: float) -> bool:
        """
        Check if the interval has elapsed.

        Args:
            current_time: Current clock value

        Returns:
            True if the timer is running (or already expired) and at least
            one interval has passed since start_time
        """
        if self.state == TimerState.STOPPED:
            return False

        if current_time - self.start_time >= self.interval:
            self.state = TimerState.EXPIRED
            return True

        return False

    def get_remaining_time(self, current_time: float) -> float:
        """Remaining time until expiry (0 if expired or stopped)."""
        if self.state != TimerState.RUNNING:
            return 0.0
        return max(0.0, (self.start_time + self.interval) - current_time)

    @property
    def running(self) -> bool:
        return self.state != TimerState.STOPPED


if __name__ == "__main__":
    print("=" * 60)
    print("RETRY TIMER TEST")
    print("=" * 60)

    timer = RetryTimer(interval=0.05)
    timer.start(0.0)
    for t in [0.01, 0.03, 0.05, 0.07, 0.10]:
        if timer.check_expired(t):
            timer.restart(t)
            print(f"  t={t:.2f}: expired, retry #{timer.retransmit_count}")
        else:
            print(f"  t={t:.2f}: {timer.get_remaining_time(t) * 1000:.0f} ms left")
