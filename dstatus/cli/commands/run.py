"""Run command: stream a command's output as a deferred-status response."""

import sys
from typing import Any

import structlog
import typer

from dstatus.cli.helpers import get_settings_from_context
from dstatus.contract import STATUS_FAILED
from dstatus.core.errors import LaunchError
from dstatus.streaming.encoder import StreamEncoder


logger = structlog.get_logger(__name__)


def run(
    ctx: typer.Context,
    command: str = typer.Argument(..., help="Command to run"),
    args: list[str] | None = typer.Argument(
        None, help="Arguments passed to the command"
    ),
    content_type: str | None = typer.Option(
        None,
        "--content-type",
        "-t",
        help="Content-Type header of the response",
    ),
    cgi: bool | None = typer.Option(
        None,
        "--cgi/--no-cgi",
        help="Merge CGI headers printed by the command (not supported yet: output is passed through as body)",
    ),
    block_size: int | None = typer.Option(
        None,
        "--block-size",
        min=1,
        help="Maximum bytes read from the command per chunk",
    ),
) -> None:
    """
    Run COMMAND and write its output to stdout as a chunked HTTP response.

    The response starts with the placeholder status [bold]208 Trailing Status[/bold];
    the real status travels in the [bold]X-Deferred-Status[/bold] trailer:
    [green]200 OK[/green] when the command exits 0, otherwise
    [red]500 Internal Server Error[/red].

    Examples:
        dstatus run -t text/plain -- make test
        dstatus run ls -la /tmp
    """
    settings = get_settings_from_context(ctx)
    overrides: dict[str, Any] = {
        "content_type": content_type,
        "merge_cgi_headers": cgi,
        "block_size": block_size,
    }
    encoder_settings = settings.encoder.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )

    sink = sys.stdout.buffer
    encoder = StreamEncoder(sink, encoder_settings)

    try:
        result = encoder.run(command, args or [])
    except LaunchError as e:
        logger.error("command_launch_failed", command=command, error=str(e))
        encoder.write_error_response(STATUS_FAILED, str(e))
        raise typer.Exit(1) from e

    if not result.status.is_success:
        raise typer.Exit(1)
