"""
Exceptions raised by link sessions.

Protocol faults never surface here; they end the session through its dead
reason. These cover caller-facing failures only.
"""


class LinkError(RuntimeError):
    """Base class for link session errors."""


class TransportNotPresentError(LinkError):
    """Raised when the transport identification probe does not match."""


class SessionStateError(LinkError):
    """Raised when an operation is not allowed in the session's current state."""


class ConnectTimeoutError(LinkError):
    """Raised when a blocking connect does not reach CONNECTED in time."""
