"""Consumer commands: decode a captured response or fetch one over HTTP."""

import socket
import sys
from pathlib import Path
from typing import BinaryIO

import httpx
import structlog
import typer

from dstatus import __version__
from dstatus.cli.helpers import (
    exit_code_for,
    fail,
    get_settings_from_context,
    relay_response,
    report_response,
)
from dstatus.core.errors import ProtocolViolation
from dstatus.http.deferred import DeferredStatusReader
from dstatus.http.reader import H11ResponseReader


logger = structlog.get_logger(__name__)


def _relay(reader: H11ResponseReader, out: BinaryIO, show_headers: bool) -> int:
    try:
        response = relay_response(DeferredStatusReader(reader), out)
    except ProtocolViolation as e:
        logger.debug("response_protocol_violation", error=str(e))
        raise fail(str(e)) from e
    except BrokenPipeError:
        raise
    except OSError as e:
        logger.debug("response_output_failed", error=str(e))
        raise fail(f"writing response body failed: {e}") from e

    report_response(response, show_headers=show_headers)
    return exit_code_for(response.status)


def decode(
    ctx: typer.Context,
    source: Path | None = typer.Argument(
        None,
        help="File holding a raw HTTP response (default: stdin)",
        exists=True,
        dir_okay=False,
        readable=True,
        allow_dash=True,
    ),
    show_headers: bool = typer.Option(
        False, "--include", "-i", help="Also print headers and trailers to stderr"
    ),
) -> None:
    """
    Decode a raw HTTP response, writing its body to stdout.

    The final status, resolved from the [bold]X-Deferred-Status[/bold] trailer
    when deferred, is reported on stderr. Exit code is 0 below 400, 1 for
    error statuses, 2 for protocol violations.

    Examples:
        dstatus run make test > response.http; dstatus decode response.http
        dstatus run make test | dstatus decode
    """
    settings = get_settings_from_context(ctx)
    read_size = settings.client.read_size

    if source is None or str(source) == "-":
        reader = H11ResponseReader.from_stream(
            sys.stdin.buffer, read_size=read_size
        )
        raise typer.Exit(_relay(reader, sys.stdout.buffer, show_headers))

    with source.open("rb") as f:
        reader = H11ResponseReader.from_stream(f, read_size=read_size)
        exit_code = _relay(reader, sys.stdout.buffer, show_headers)
    raise typer.Exit(exit_code)


def fetch(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="http:// URL to GET"),
    show_headers: bool = typer.Option(
        False, "--include", "-i", help="Also print headers and trailers to stderr"
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", min=0.001, help="Socket timeout in seconds"
    ),
) -> None:
    """
    Fetch URL and write the response body to stdout.

    Like [bold]decode[/bold], but reads the response from a single plain-HTTP
    GET request. The request advertises [bold]TE: trailers[/bold].
    """
    settings = get_settings_from_context(ctx)

    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise fail(f"invalid URL {url!r}: {e}") from e
    if parsed.scheme != "http" or not parsed.host:
        raise fail(f"only http:// URLs are supported, got {url!r}")

    port = parsed.port or 80
    target = parsed.raw_path.decode("ascii")
    headers = [
        ("Host", parsed.netloc.decode("ascii")),
        ("User-Agent", f"dstatus/{__version__}"),
        ("TE", "trailers"),
        ("Connection", "close"),
    ]

    logger.info("fetch_started", host=parsed.host, port=port, target=target)
    try:
        sock = socket.create_connection(
            (parsed.host, port), timeout=timeout or settings.client.timeout
        )
    except OSError as e:
        logger.debug("fetch_connection_failed", error=str(e))
        raise fail(f"connection to {parsed.host}:{port} failed: {e}") from e

    with sock:
        reader = H11ResponseReader.from_socket(
            sock, read_size=settings.client.read_size
        )
        try:
            sock.sendall(reader.send_request("GET", target, headers))
        except OSError as e:
            logger.debug("fetch_request_failed", error=str(e))
            raise fail(
                f"sending request to {parsed.host}:{port} failed: {e}"
            ) from e
        # Receive errors surface as ResponseReadError from the reader
        exit_code = _relay(reader, sys.stdout.buffer, show_headers)

    raise typer.Exit(exit_code)
