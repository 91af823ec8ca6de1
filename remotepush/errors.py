"""Error types raised by the push pipeline."""
from typing import Optional


class PushError(Exception):
    """Base class for errors that abort a push."""
    kind = "PushError"


class ValidationError(PushError):
    """An observation is malformed (empty name, reserved label, ...)."""
    kind = "ValidationError"


class EncodingError(PushError):
    """The write request could not be serialized or compressed."""
    kind = "EncodingError"


class TransportError(PushError):
    """The receiver rejected the request or could not be reached.

    ``status`` is None when no HTTP response was received.
    """
    kind = "TransportError"

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"HTTP {self.status}: {self.message}"
