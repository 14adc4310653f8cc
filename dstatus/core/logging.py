"""Structured logging setup for dstatus.

All log output goes to stderr (or a log file): stdout is reserved for the
HTTP response written by ``dstatus run``.
"""

import logging
import sys
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme


CUSTOM_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "critical": "bold white on red",
        "debug": "dim white",
        "timestamp": "dim cyan",
        "path": "dim blue",
    }
)

# Rich console bound to stderr
console = Console(theme=CUSTOM_THEME, stderr=True)


def resolve_log_format(log_format: str) -> str:
    """Resolve ``auto`` to ``rich`` on an interactive stderr, ``json`` otherwise."""
    if log_format != "auto":
        return log_format
    return "rich" if sys.stderr.isatty() else "json"


def setup_logging(
    json_logs: bool = False,
    log_level_name: str = "WARNING",
    log_file: str | None = None,
    show_path: bool = False,
) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        json_logs: Render JSON lines instead of rich console output
        log_level_name: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path receiving JSON logs in addition to stderr
        show_path: Whether to show the module path in rich output
    """
    level = getattr(logging, log_level_name.upper(), logging.WARNING)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    json_formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )

    handlers: list[logging.Handler] = []
    if json_logs:
        stderr_handler: logging.Handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(json_formatter)
    else:
        # RichHandler prints time and level itself
        stderr_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=show_path,
            rich_tracebacks=True,
            markup=False,
        )
        stderr_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    _drop_keys("timestamp", "level", "logger"),
                    structlog.dev.ConsoleRenderer(colors=False),
                ],
            )
        )
    handlers.append(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(json_formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for logger_name in ["httpx", "httpcore"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def _drop_keys(*keys: str) -> Any:
    def processor(_logger: Any, _method: str, event_dict: dict[str, Any]) -> Any:
        for key in keys:
            event_dict.pop(key, None)
        return event_dict

    return processor


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger bound to ``name`` (typically ``__name__``)."""
    return structlog.get_logger(name)
