"""Low-level HTTP/1.1 response reader built on h11."""

import socket
from collections.abc import Callable, Iterator
from typing import BinaryIO

import h11
import structlog

from dstatus.core.errors import ResponseReadError
from dstatus.core.interfaces import Headers


logger = structlog.get_logger(__name__)

DEFAULT_READ_SIZE = 64 * 1024

Receive = Callable[[int], bytes]


def _decode_headers(event: h11.Response | h11.EndOfMessage) -> Headers:
    return [
        (name.decode("latin-1"), value.decode("latin-1"))
        for name, value in event.headers.raw_items()
    ]


class H11ResponseReader:
    """Read one HTTP response from a byte source.

    ``receive(n)`` must return up to ``n`` bytes and ``b""`` at end of input.
    The body can be streamed with :meth:`iter_body`; :meth:`read_trailers`
    discards whatever body is left unread.
    """

    def __init__(self, receive: Receive, read_size: int = DEFAULT_READ_SIZE):
        self._receive = receive
        self._read_size = read_size
        self._conn = h11.Connection(our_role=h11.CLIENT)
        self._trailers: Headers | None = None

    @classmethod
    def from_stream(
        cls, stream: BinaryIO, read_size: int = DEFAULT_READ_SIZE
    ) -> "H11ResponseReader":
        read = getattr(stream, "read1", stream.read)
        return cls(read, read_size=read_size)

    @classmethod
    def from_socket(
        cls, sock: socket.socket, read_size: int = DEFAULT_READ_SIZE
    ) -> "H11ResponseReader":
        return cls(sock.recv, read_size=read_size)

    def send_request(
        self, method: str, target: str, headers: Headers | None = None
    ) -> bytes:
        """Return the bytes of a body-less request to put on the wire."""
        try:
            data = self._conn.send(
                h11.Request(method=method, target=target, headers=headers or [])
            )
            data += self._conn.send(h11.EndOfMessage()) or b""
        except h11.LocalProtocolError as e:
            raise ResponseReadError(f"cannot build request: {e}") from e
        return data or b""

    def _next_event(self) -> object:
        while True:
            try:
                event = self._conn.next_event()
            except h11.RemoteProtocolError as e:
                raise ResponseReadError(f"malformed HTTP response: {e}") from e
            if event is not h11.NEED_DATA:
                return event
            try:
                data = self._receive(self._read_size)
            except OSError as e:
                raise ResponseReadError(f"reading response failed: {e}") from e
            if not data:
                logger.debug("response_input_exhausted")
            self._conn.receive_data(data)

    def read_status_line(self) -> tuple[int, str, Headers]:
        if self._conn.our_state is h11.IDLE:
            # Replaying a captured response: h11 only accepts one after a request
            self.send_request("GET", "/", [("Host", "localhost")])

        while True:
            event = self._next_event()
            if isinstance(event, h11.InformationalResponse):
                continue
            if isinstance(event, h11.Response):
                return (
                    event.status_code,
                    event.reason.decode("latin-1"),
                    _decode_headers(event),
                )
            raise ResponseReadError(f"expected a response, got {event!r}")

    def iter_body(self) -> Iterator[bytes]:
        """Yield body data until the end of the message."""
        while self._trailers is None:
            event = self._next_event()
            if isinstance(event, h11.Data):
                yield bytes(event.data)
            elif isinstance(event, h11.EndOfMessage):
                self._trailers = _decode_headers(event)
            else:
                raise ResponseReadError(f"unexpected event in body: {event!r}")

    def read_trailers(self) -> Headers:
        for _ in self.iter_body():
            pass
        assert self._trailers is not None
        return list(self._trailers)
