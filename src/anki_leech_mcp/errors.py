"""
Error types shared by the transport, hydrator and tool dispatcher.
"""

from enum import Enum
from typing import Optional


class TransportErrorKind(str, Enum):
    """Failure categories for a single AnkiConnect call."""

    CONNECTION_REFUSED = "ConnectionRefused"
    CONNECTION_RESET = "ConnectionReset"
    REMOTE_ERROR = "RemoteError"
    OTHER_NETWORK = "OtherNetwork"


class TransportError(Exception):
    """A call to AnkiConnect failed.

    Attributes:
        kind: Which category of failure occurred
        message: Human-readable description, safe to show to the user
        action: The AnkiConnect action that was being called, if known
    """

    def __init__(self, kind: TransportErrorKind, message: str, action: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.action = action

    def __repr__(self) -> str:
        return f"TransportError({self.kind.value!r}, {self.message!r})"


class ToolValidationError(ValueError):
    """Tool arguments were rejected before any request was made."""
