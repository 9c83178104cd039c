"""
Failure taxonomy for the reminder dispatcher.

Which failures are message-local (``MessageRejected``) and which mean the
transport session is unusable (``SessionLost``) is decided by the transport
adapter, never by the dispatch cycle.
"""
from typing import Optional


class ReminderError(Exception):
    """Base class for all dispatcher failures."""


class StoreUnavailable(ReminderError):
    """The event store could not be queried."""


class TransientScanFailure(StoreUnavailable):
    """A scan failed; the tick is skipped and the next tick retries."""


class TransportError(ReminderError):
    """Base class for transport failures."""


class ConnectError(TransportError):
    """A transport session could not be established."""


class MessageRejected(TransportError):
    """A single message was refused; other recipients are unaffected."""

    def __init__(self, address: str, reason: Optional[str] = None):
        self.address = address
        self.reason = reason
        super().__init__(f"message to {address} rejected" + (f": {reason}" if reason else ""))


class InvalidAddress(MessageRejected):
    """The stored messaging address cannot be turned into a recipient."""


class SessionLost(TransportError):
    """The transport session is no longer usable; the supervisor must reconnect."""
