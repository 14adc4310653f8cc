"""Consumer side: HTTP response reading with deferred-status resolution."""

from .deferred import DeferredStatusReader, StatusState
from .reader import H11ResponseReader


__all__ = [
    "DeferredStatusReader",
    "H11ResponseReader",
    "StatusState",
]
