"""
Utilities package - Helper functions and classes.

Contains implementations for:
- Link statistics and transfer metrics
- Receive queue
- Logging utilities
"""

from .metrics import LinkStatistics, TransferMetrics
from .buffer import MessageKind, MessageQueue, ReceivedMessage
from .logger import LinkLogger, LogLevel

__all__ = [
    'LinkStatistics',
    'TransferMetrics',
    'MessageKind',
    'MessageQueue',
    'ReceivedMessage',
    'LinkLogger',
    'LogLevel'
]
