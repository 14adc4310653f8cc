"""Exceptions raised by the deferred-status producer and consumer."""


class DeferredStatusError(Exception):
    """Base exception for all dstatus errors."""

    pass


# === Producer ===


class LaunchError(DeferredStatusError):
    """Raised when the child command cannot be started.

    Nothing has been written to the response sink at this point, so an
    ordinary error response can still be sent instead.
    """

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"cannot launch {command!r}: {reason}")
        self.command = command
        self.reason = reason


class ReadFailure(DeferredStatusError):
    """Raised when reading the child's output fails before end-of-stream."""

    pass


class EncoderStateError(DeferredStatusError):
    """Raised when encoder operations are called out of wire order."""

    pass


# === Consumer ===


class ProtocolViolation(DeferredStatusError):
    """Base exception for responses that break the deferred-status protocol."""

    pass


class MalformedTrailerStatus(ProtocolViolation):
    """Raised when the deferred-status trailer is not a valid status line."""

    pass


class MissingDeferredStatus(ProtocolViolation):
    """Raised when a deferred response ends without its status trailer."""

    pass


class ResponseReadError(ProtocolViolation):
    """Raised when the underlying HTTP response cannot be parsed."""

    pass


class PrematureStatusQuery(DeferredStatusError):
    """Raised when the status is queried before response headers were read."""

    pass
