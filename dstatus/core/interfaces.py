"""Core interfaces shared across dstatus.

The deferred-status reader only needs two capabilities from the HTTP layer
below it, so any object offering them can be wrapped.
"""

from collections.abc import Iterator
from typing import Protocol, runtime_checkable


__all__ = [
    "Headers",
    "ResponseReader",
    "StreamingResponseReader",
    "OutputStream",
]


Headers = list[tuple[str, str]]


@runtime_checkable
class ResponseReader(Protocol):
    """Low-level HTTP response reader."""

    def read_status_line(self) -> tuple[int, str, Headers]:
        """Read the status line and header block.

        Returns:
            Tuple of (status code, reason phrase, header pairs)
        """
        ...

    def read_trailers(self) -> Headers:
        """Read the trailer fields that follow the terminal chunk."""
        ...


@runtime_checkable
class StreamingResponseReader(ResponseReader, Protocol):
    """Response reader that can also stream the body."""

    def iter_body(self) -> Iterator[bytes]: ...


class OutputStream(Protocol):
    """Readable end of a child's output channel."""

    def read(self, size: int = -1, /) -> bytes: ...

    def close(self) -> None: ...
