"""Response reader that resolves deferred statuses from trailers.

A response whose status line carries the placeholder code has its real
status in the ``X-Deferred-Status`` trailer. The placeholder is never handed
to the caller: until the trailer is read the status is reported as unknown.
"""

from collections.abc import Iterator
from enum import Enum

import structlog

from dstatus.contract import (
    DEFERRED_STATUS_CODE,
    DEFERRED_STATUS_HEADER,
    PENDING_STATUS,
    ResolvedStatus,
    is_deferred_header,
    parse_status_line,
)
from dstatus.core.errors import (
    DeferredStatusError,
    MissingDeferredStatus,
    PrematureStatusQuery,
)
from dstatus.core.interfaces import Headers, ResponseReader


logger = structlog.get_logger(__name__)


class StatusState(str, Enum):
    UNRESOLVED = "unresolved"
    DEFERRED = "deferred"
    RESOLVED = "resolved"


class DeferredStatusReader:
    """Deferred-status state machine layered over a response reader.

    ``UNRESOLVED`` moves to ``DEFERRED`` or ``RESOLVED`` when headers are
    read; ``DEFERRED`` moves to ``RESOLVED`` when trailers are read.
    ``RESOLVED`` is terminal.
    """

    def __init__(self, reader: ResponseReader):
        self.reader = reader
        self._state = StatusState.UNRESOLVED
        self._status: ResolvedStatus | None = None

    @property
    def state(self) -> StatusState:
        return self._state

    @property
    def is_deferred(self) -> bool:
        return self._state is StatusState.DEFERRED

    def read_response_headers(self) -> tuple[int | None, str | None, Headers]:
        """Read the status line and headers.

        Returns:
            ``(code, reason, headers)``, or ``(None, None, headers)`` when the
            status is deferred to the trailer
        """
        if self._state is not StatusState.UNRESOLVED:
            raise DeferredStatusError("response headers were already read")

        code, reason, headers = self.reader.read_status_line()

        if code == DEFERRED_STATUS_CODE:
            self._state = StatusState.DEFERRED
            logger.debug("response_status_deferred", placeholder=code)
            return None, None, headers

        self._resolve(ResolvedStatus(code, reason))
        return code, reason, headers

    def iter_body(self) -> Iterator[bytes]:
        """Stream the body from the wrapped reader, if it supports it."""
        iter_body = getattr(self.reader, "iter_body", None)
        if iter_body is None:
            raise TypeError(
                f"{type(self.reader).__name__} does not support body streaming"
            )
        return iter_body()

    def read_trailers(self) -> Headers:
        """Read trailers and, for a deferred response, resolve its status.

        Raises:
            PrematureStatusQuery: If headers have not been read yet
            MalformedTrailerStatus: If the status trailer is not a status line
            MissingDeferredStatus: If a deferred response has no status trailer
        """
        if self._state is StatusState.UNRESOLVED:
            raise PrematureStatusQuery(
                "read_trailers can not be called before read_response_headers"
            )

        trailers = self.reader.read_trailers()
        if self._state is not StatusState.DEFERRED:
            return trailers

        values = [value for name, value in trailers if is_deferred_header(name)]
        if not values:
            raise MissingDeferredStatus(
                f"deferred response ended without a {DEFERRED_STATUS_HEADER} trailer"
            )
        if len(values) > 1:
            logger.warning(
                "duplicate_deferred_status_trailer",
                count=len(values),
                used=values[0],
                ignored=values[1:],
            )

        self._resolve(parse_status_line(values[0]))
        return trailers

    def get_status(self) -> tuple[int | None, str | None]:
        """Return ``(code, reason)``; ``(None, None)`` while still deferred.

        Raises:
            PrematureStatusQuery: If headers have not been read yet
        """
        if self._status is not None:
            return self._status
        if self._state is StatusState.DEFERRED:
            return PENDING_STATUS
        raise PrematureStatusQuery(
            "get_status can not be called before read_response_headers"
        )

    def _resolve(self, status: ResolvedStatus) -> None:
        self._status = status
        self._state = StatusState.RESOLVED
        logger.debug(
            "response_status_resolved", code=status.code, reason=status.reason
        )
