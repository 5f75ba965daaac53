"""
ARQ package - frame codec and stop-and-wait delivery components.

Contains implementations for:
- Frame structure, CRC-16 and word encoding
- Incremental receive parser
- Reliable sender and receiver
- Retry timers
"""

from .frame import Frame, FrameType
from .parser import ReceiveParser, ParserState
from .sender import ReliableSender, PendingReliable, RetryAction
from .receiver import ReliableReceiver
from .timer import RetryTimer, TimerState

__all__ = [
    'Frame',
    'FrameType',
    'ReceiveParser',
    'ParserState',
    'ReliableSender',
    'PendingReliable',
    'RetryAction',
    'ReliableReceiver',
    'RetryTimer',
    'TimerState'
]
