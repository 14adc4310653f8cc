"""Producer side: chunked framing and the deferred-status stream encoder."""

from .encoder import EncoderPhase, EncoderResult, StreamEncoder


__all__ = [
    "StreamEncoder",
    "EncoderResult",
    "EncoderPhase",
]
