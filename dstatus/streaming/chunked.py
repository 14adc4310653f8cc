"""Chunked transfer-encoding framing for deferred-status responses."""

from collections.abc import Iterable

from dstatus.contract import (
    CRLF,
    DEFERRED_STATUS_CODE,
    DEFERRED_STATUS_HEADER,
    DEFERRED_STATUS_REASON,
    HTTP_VERSION,
    ResolvedStatus,
)


LAST_CHUNK = b"0" + CRLF


def _header_line(name: str, value: str) -> bytes:
    return f"{name}: {value}".encode("latin-1") + CRLF


def status_line(status: ResolvedStatus, http_version: str = HTTP_VERSION) -> bytes:
    return f"{http_version} {status}".encode("latin-1") + CRLF


def encode_preamble(content_type: str | None = None) -> bytes:
    """Build the status line and header block of a deferred response."""
    lines = [
        status_line(ResolvedStatus(DEFERRED_STATUS_CODE, DEFERRED_STATUS_REASON)),
        _header_line("Transfer-Encoding", "chunked"),
        _header_line("Trailer", DEFERRED_STATUS_HEADER),
    ]
    if content_type:
        lines.append(_header_line("Content-Type", content_type))
    lines.append(CRLF)
    return b"".join(lines)


def encode_chunk(data: bytes) -> bytes:
    """Frame one chunk: hex size, CRLF, data, CRLF.

    Raises:
        ValueError: For empty data, which would read as the terminal chunk
    """
    if not data:
        raise ValueError("empty chunk would terminate the body")
    return b"%x" % len(data) + CRLF + data + CRLF


def encode_trailers(fields: Iterable[tuple[str, str]]) -> bytes:
    """Encode trailer fields and the final blank line."""
    return b"".join(_header_line(name, value) for name, value in fields) + CRLF


def encode_deferred_trailer(status: ResolvedStatus) -> bytes:
    return encode_trailers([(DEFERRED_STATUS_HEADER, str(status))])


def encode_plain_response(
    status: ResolvedStatus, body: bytes, content_type: str = "text/plain"
) -> bytes:
    """Encode a complete non-deferred response with a Content-Length body."""
    return (
        status_line(status)
        + _header_line("Content-Type", content_type)
        + _header_line("Content-Length", str(len(body)))
        + CRLF
        + body
    )
