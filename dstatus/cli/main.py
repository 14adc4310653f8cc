"""Main entry point for the dstatus CLI."""

from pathlib import Path

import typer
from structlog import get_logger

from dstatus._version import __version__
from dstatus.cli.helpers import err_console, fail
from dstatus.config.settings import ConfigurationError, Settings
from dstatus.core.logging import resolve_log_format, setup_logging

from .commands import decode, fetch, run


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"dstatus {__version__}")
        raise typer.Exit()


app = typer.Typer(
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=True,
    pretty_exceptions_enable=False,
    help="Stream command output as HTTP responses whose status arrives in a trailer.",
)

# Logger will be configured by the app callback
logger = get_logger(__name__)


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
    log_format: str | None = typer.Option(
        None,
        "--log-format",
        help="Logging format: auto, rich or json",
    ),
    log_file: str | None = typer.Option(
        None,
        "--log-file",
        help="Also write JSON logs to this file",
    ),
) -> None:
    """Deferred HTTP status over chunked-encoding trailers."""
    try:
        settings = Settings.from_config(
            config_path=config,
            logging={"level": log_level, "format": log_format, "file": log_file},
        )
    except ConfigurationError as e:
        raise fail(str(e)) from e

    setup_logging(
        json_logs=resolve_log_format(settings.logging.format) == "json",
        log_level_name=settings.logging.level,
        log_file=settings.logging.file,
        show_path=settings.logging.show_path,
    )
    logger.debug("settings_loaded", settings=settings.model_dump(mode="json"))

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


app.command(
    context_settings={
        "allow_interspersed_args": False,
        "ignore_unknown_options": True,
    }
)(run)
app.command()(decode)
app.command()(fetch)


def main() -> None:
    """Entry point for the CLI application."""
    try:
        app()
    except KeyboardInterrupt:
        err_console.print("[warning]interrupted[/warning]")
        raise SystemExit(130) from None


if __name__ == "__main__":
    main()
