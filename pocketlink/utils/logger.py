"""
Link Logger

This module provides logging for link sessions, with configurable
verbosity, category tags and timestamps taken from the session clock.
"""

import os
from datetime import datetime
from enum import IntEnum
from typing import Optional, TextIO

from pocketlink.config import DEFAULT_LOG_LEVEL


class LogLevel(IntEnum):
    """Log level enumeration."""
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    CRITICAL = 4


class LinkLogger:
    """
    Logger for link events.

    Attributes:
        name: Logger name (usually the session's role or label)
        level: Minimum log level
        file: Optional file for logging
    """

    # Color codes for terminal output
    COLORS = {
        LogLevel.DEBUG: '\033[36m',     # Cyan
        LogLevel.INFO: '\033[32m',      # Green
        LogLevel.WARNING: '\033[33m',   # Yellow
        LogLevel.ERROR: '\033[31m',     # Red
        LogLevel.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(
        self,
        name: str = "Link",
        level: int = DEFAULT_LOG_LEVEL,
        log_file: Optional[str] = None,
        use_colors: bool = True,
        include_timestamp: bool = True
    ):
        """
        Initialize logger.

        Args:
            name: Logger name
            level: Minimum log level
            log_file: Optional file path for logging
            use_colors: Use ANSI colors in output
            include_timestamp: Include timestamps in log messages
        """
        self.name = name
        self.level = level
        self.use_colors = use_colors
        self.include_timestamp = include_timestamp

        self.file: Optional[TextIO] = None
        if log_file:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self.file = open(log_file, 'w')

        # Link clock, in seconds
        self.link_time: Optional[float] = None

        self.message_counts = {level: 0 for level in LogLevel}

    def set_time(self, time: float):
        """Set the clock value printed with following messages."""
        self.link_time = time

    def set_level(self, level: int):
        """Set minimum log level."""
        self.level = level

    def is_enabled(self, level: int) -> bool:
        return level >= self.level

    def _format_message(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None
    ) -> str:
        parts = []

        if self.include_timestamp:
            if self.link_time is not None:
                parts.append(f"[{self.link_time:10.4f}s]")
            else:
                parts.append(f"[{datetime.now().strftime('%H:%M:%S.%f')[:-3]}]")

        level_str = level.name.ljust(8)
        if self.use_colors:
            level_str = f"{self.COLORS[level]}{level_str}{self.RESET}"
        parts.append(level_str)

        parts.append(f"[{self.name}]")
        if category:
            parts.append(f"[{category}]")
        parts.append(message)

        return " ".join(parts)

    def _log(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None
    ):
        if level < self.level:
            return

        self.message_counts[level] += 1
        formatted = self._format_message(level, message, category)

        print(formatted)

        if self.file:
            # Strip color codes for file
            clean = formatted
            for color in self.COLORS.values():
                clean = clean.replace(color, '')
            clean = clean.replace(self.RESET, '')
            self.file.write(clean + '\n')
            self.file.flush()

    def debug(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.DEBUG, message, category)

    def info(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.INFO, message, category)

    def warning(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.WARNING, message, category)

    def error(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.ERROR, message, category)

    def critical(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.CRITICAL, message, category)

    # Convenience methods for link events
    def frame_sent(self, type_name: str, seq: int, length: int):
        """Log frame sent event."""
        self.debug(f"{type_name} seq={seq} len={length}", "TX")

    def frame_received(self, type_name: str, seq: int, length: int):
        """Log frame received event."""
        self.debug(f"{type_name} seq={seq} len={length}", "RX")

    def crc_failure(self, frame_type: int, length: int, got: int, want: int):
        """Log a checksum mismatch."""
        self.info(
            f"Checksum mismatch type={frame_type} len={length} "
            f"got=0x{got:04X} want=0x{want:04X}",
            "CRC"
        )

    def ack_received(self, seq: int, accepted: bool):
        self.debug(f"ACK {seq} {'accepted' if accepted else 'ignored'}", "ACK")

    def retransmit(self, seq: int, retry_count: int):
        """Log retransmission event."""
        self.debug(f"Retransmitting seq={seq} (retry #{retry_count})", "RETX")

    def state_change(self, old_state: str, new_state: str):
        self.info(f"{old_state} -> {new_state}", "STATE")

    def handshake(self, message: str):
        self.info(message, "HANDSHAKE")

    def link_dead(self, reason: str):
        """Log a fatal session transition."""
        self.warning(f"Link dead: {reason}", "DEAD")

    def get_summary(self) -> dict:
        """Get logging summary."""
        return {
            'message_counts': dict(self.message_counts),
            'total_messages': sum(self.message_counts.values())
        }

    def close(self):
        """Close log file if open."""
        if self.file:
            self.file.close()
            self.file = None

    def __del__(self):
        self.close()


if __name__ == "__main__":
    print("=" * 60)
    print("LINK LOGGER TEST")
    print("=" * 60)

    logger = LinkLogger(name="Test", level=LogLevel.DEBUG)

    logger.set_time(0.0)
    logger.handshake("Sending HELLO")
    logger.frame_sent("HELLO", 0, 0)

    logger.set_time(0.012)
    logger.frame_received("HELLO_ACK", 0, 0)
    logger.state_change("HANDSHAKE", "CONNECTED")

    logger.set_time(0.100)
    logger.crc_failure(3, 16, 0x1234, 0xBEEF)
    logger.retransmit(0, 1)

    logger.set_time(2.100)
    logger.link_dead("peer_timeout")

    print(f"\nLogger summary: {logger.get_summary()}")
