"""
PocketLink - reliable peer-to-peer messaging over a 32-bit word link cable.
"""

from .errors import ConnectTimeoutError, LinkError, SessionStateError, TransportNotPresentError
from .layers import LinkCable, LinkConfig, LinkSession, SendResult, SessionState

__version__ = "0.1.0"

__all__ = [
    'ConnectTimeoutError',
    'LinkError',
    'SessionStateError',
    'TransportNotPresentError',
    'LinkCable',
    'LinkConfig',
    'LinkSession',
    'SendResult',
    'SessionState'
]
