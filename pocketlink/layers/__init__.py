"""
Layers package - transport and session stack.

Contains implementations for:
- Physical Layer (word transport contract and in-memory link cable)
- Transmission guard (frame writer)
- Link Layer (session state machine)
"""

from .physical_layer import CableEndpoint, LinkCable, LinkStatus, Transport
from .transmission import TransmissionGuard
from .link_layer import (
    DeadReason,
    LinkConfig,
    LinkSession,
    SendResult,
    SessionRole,
    SessionState
)

__all__ = [
    'CableEndpoint',
    'LinkCable',
    'LinkStatus',
    'Transport',
    'TransmissionGuard',
    'DeadReason',
    'LinkConfig',
    'LinkSession',
    'SendResult',
    'SessionRole',
    'SessionState'
]
