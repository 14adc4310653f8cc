"""CLI commands for dstatus."""

from .read import decode, fetch
from .run import run


__all__ = ["run", "decode", "fetch"]
