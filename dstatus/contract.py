"""Wire contract shared by the deferred-status producer and consumer."""

import re
from typing import NamedTuple

from dstatus.core.errors import MalformedTrailerStatus


# Placeholder status sent in the status line while the real one is unknown
DEFERRED_STATUS_CODE = 208
DEFERRED_STATUS_REASON = "Trailing Status"

# Trailer field carrying the real status line
DEFERRED_STATUS_HEADER = "X-Deferred-Status"

HTTP_VERSION = "HTTP/1.1"
CRLF = b"\r\n"

_STATUS_LINE_RE = re.compile(r"^(\d{3})(?!\d)[ \t]*(.*)$", re.DOTALL)


class ResolvedStatus(NamedTuple):
    """Final HTTP status of a response."""

    code: int
    reason: str

    def __str__(self) -> str:
        return f"{self.code} {self.reason}".rstrip()

    @property
    def is_success(self) -> bool:
        return 200 <= self.code < 300


STATUS_OK = ResolvedStatus(200, "OK")
STATUS_FAILED = ResolvedStatus(500, "Internal Server Error")

# Returned by readers while the status is still deferred
PENDING_STATUS: tuple[None, None] = (None, None)


def parse_status_line(line: str) -> ResolvedStatus:
    """Parse ``<3 digits><optional separator><reason>`` into a status.

    Raises:
        MalformedTrailerStatus: If the value does not begin with exactly
            three digits
    """
    match = _STATUS_LINE_RE.match(line.strip())
    if match is None:
        raise MalformedTrailerStatus(f"invalid status line: {line!r}")
    code, reason = match.groups()
    return ResolvedStatus(int(code), reason.strip())


def is_deferred_header(name: str) -> bool:
    return name.lower() == DEFERRED_STATUS_HEADER.lower()
