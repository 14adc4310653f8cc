"""Core configuration settings - encoder and client."""

from pydantic import BaseModel, Field


# === Encoder Configuration ===


class EncoderSettings(BaseModel):
    """Settings for the producer side (``dstatus run``)."""

    block_size: int = Field(
        default=1024 * 1024,
        description="Maximum number of bytes read from the child per chunk",
        ge=1,
    )

    content_type: str | None = Field(
        default=None,
        description="Content-Type header sent with the deferred response",
    )

    merge_cgi_headers: bool = Field(
        default=False,
        description="Merge CGI headers printed by the child into the response (not supported; output is passed through as body)",
    )


# === Client Configuration ===


class ClientSettings(BaseModel):
    """Settings for the consumer side (``dstatus decode`` / ``dstatus fetch``)."""

    timeout: float = Field(
        default=30.0,
        description="Socket timeout in seconds for fetch",
        gt=0,
    )

    read_size: int = Field(
        default=64 * 1024,
        description="Number of bytes requested per read from the transport",
        ge=1,
    )
