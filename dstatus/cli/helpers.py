"""CLI helper utilities for dstatus."""

from dataclasses import dataclass, field
from typing import BinaryIO

import typer
from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

from dstatus.config.settings import Settings
from dstatus.contract import ResolvedStatus
from dstatus.core.interfaces import Headers
from dstatus.http.deferred import DeferredStatusReader


CLI_THEME = Theme(
    {
        "success": "bold green",
        "error": "bold red",
        "warning": "bold yellow",
        "info": "blue",
        "header": "cyan",
        "trailer": "magenta",
    }
)

# Everything human-readable goes to stderr; stdout carries response data
err_console = Console(theme=CLI_THEME, stderr=True, highlight=False)

# Exit codes shared by the consumer commands
EXIT_OK = 0
EXIT_HTTP_ERROR = 1
EXIT_PROTOCOL_ERROR = 2


def get_settings_from_context(ctx: typer.Context) -> Settings:
    """Settings loaded by the app callback, or defaults when run standalone."""
    obj = ctx.find_root().obj
    if isinstance(obj, dict) and isinstance(obj.get("settings"), Settings):
        return obj["settings"]
    return Settings.from_config()


@dataclass
class RelayedResponse:
    status: ResolvedStatus
    deferred: bool
    headers: Headers = field(default_factory=list)
    trailers: Headers = field(default_factory=list)
    body_bytes: int = 0


def relay_response(reader: DeferredStatusReader, out: BinaryIO) -> RelayedResponse:
    """Copy the body of a response to ``out`` and resolve its final status."""
    _, _, headers = reader.read_response_headers()
    deferred = reader.is_deferred

    body_bytes = 0
    for data in reader.iter_body():
        out.write(data)
        out.flush()
        body_bytes += len(data)

    trailers = reader.read_trailers()
    code, reason = reader.get_status()
    assert code is not None and reason is not None
    return RelayedResponse(
        status=ResolvedStatus(code, reason),
        deferred=deferred,
        headers=headers,
        trailers=trailers,
        body_bytes=body_bytes,
    )


def report_response(response: RelayedResponse, show_headers: bool = False) -> None:
    if show_headers:
        for name, value in response.headers:
            err_console.print(f"[header]{escape(name)}[/header]: {escape(value)}")
        for name, value in response.trailers:
            err_console.print(f"[trailer]{escape(name)}[/trailer]: {escape(value)}")

    style = "success" if response.status.code < 400 else "error"
    origin = "trailer" if response.deferred else "status line"
    err_console.print(
        f"[{style}]{escape(str(response.status))}[/{style}] (from {origin}, {response.body_bytes} body bytes)"
    )


def exit_code_for(status: ResolvedStatus) -> int:
    return EXIT_OK if status.code < 400 else EXIT_HTTP_ERROR


def fail(message: str, code: int = EXIT_PROTOCOL_ERROR) -> typer.Exit:
    """Print an error to stderr and return the Exit to raise."""
    err_console.print(f"[error]error:[/error] {escape(message)}")
    return typer.Exit(code)
