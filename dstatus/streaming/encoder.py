"""Stream a child's output as a chunked HTTP response with a deferred status.

The response is written in four strictly ordered parts: a preamble with the
placeholder status, one chunk per block read from the child, the terminal
chunk, and a trailer carrying the real status derived from the child's exit.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO

import structlog

from dstatus.config.core import EncoderSettings
from dstatus.contract import STATUS_FAILED, ResolvedStatus
from dstatus.core.errors import EncoderStateError, ReadFailure
from dstatus.process import ChildProcess, ExitOutcome, spawn

from .chunked import (
    LAST_CHUNK,
    encode_chunk,
    encode_deferred_trailer,
    encode_plain_response,
    encode_preamble,
)


logger = structlog.get_logger(__name__)

Spawner = Callable[[str, Sequence[str]], ChildProcess]


class EncoderPhase(IntEnum):
    IDLE = 0
    STARTED = 1
    PREAMBLE_SENT = 2
    BODY_DRAINED = 3
    BODY_FINISHED = 4
    TRAILER_SENT = 5


@dataclass(frozen=True)
class EncoderResult:
    """Summary of one completed deferred response."""

    status: ResolvedStatus
    outcome: ExitOutcome
    bytes_sent: int
    chunks_sent: int
    read_error: ReadFailure | None = None


class StreamEncoder:
    """Producer side of the deferred-status protocol.

    One encoder serves one response; the sink is owned exclusively for its
    lifetime.
    """

    def __init__(
        self,
        sink: BinaryIO,
        settings: EncoderSettings | None = None,
        spawner: Spawner = spawn,
    ) -> None:
        """Initialize the encoder.

        Args:
            sink: Binary stream receiving the HTTP response
            settings: Encoder settings (block size, content type)
            spawner: Callable starting the child process
        """
        self.sink = sink
        self.settings = settings or EncoderSettings()
        self._spawner = spawner
        self._phase = EncoderPhase.IDLE
        self._child: ChildProcess | None = None
        self._read_error: ReadFailure | None = None
        self._outcome: ExitOutcome | None = None
        self.bytes_sent = 0
        self.chunks_sent = 0

    @property
    def phase(self) -> EncoderPhase:
        return self._phase

    @property
    def read_error(self) -> ReadFailure | None:
        return self._read_error

    def _require(self, phase: EncoderPhase, operation: str) -> None:
        if self._phase is not phase:
            raise EncoderStateError(
                f"{operation} requires phase {phase.name}, encoder is in {self._phase.name}"
            )

    def _write(self, data: bytes) -> None:
        try:
            self.sink.write(data)
            self.sink.flush()
        except OSError:
            # The response cannot be completed; don't leave the child blocked on the pipe
            if self._child is not None:
                self._child.kill()
                self._child.wait()
            raise

    def start(self, command: str, args: Sequence[str] = ()) -> ChildProcess:
        """Launch the child with its output captured.

        Raises:
            LaunchError: If the command cannot be started
        """
        self._require(EncoderPhase.IDLE, "start")
        if self.settings.merge_cgi_headers:
            logger.warning(
                "cgi_header_merge_not_supported",
                command=command,
                detail="child output is passed through as body",
            )
        self._child = self._spawner(command, args)
        self._phase = EncoderPhase.STARTED
        logger.info("encoder_started", command=command, pid=self._child.pid)
        return self._child

    def write_response_preamble(self) -> None:
        self._require(EncoderPhase.STARTED, "write_response_preamble")
        self._write(encode_preamble(self.settings.content_type))
        self._phase = EncoderPhase.PREAMBLE_SENT

    def _read_block(self) -> bytes:
        assert self._child is not None
        try:
            return self._child.output.read(self.settings.block_size) or b""
        except OSError as e:
            raise ReadFailure(f"reading child output failed: {e}") from e

    def pump_body(self) -> int:
        """Forward the child's output as chunks until end-of-stream.

        Each block is written and released before the next read, so a slow
        sink stalls the child through the pipe instead of growing a buffer.

        Returns:
            Number of body bytes forwarded by this call
        """
        self._require(EncoderPhase.PREAMBLE_SENT, "pump_body")
        assert self._child is not None
        forwarded = 0
        while True:
            try:
                data = self._read_block()
            except ReadFailure as e:
                self._read_error = e
                logger.error(
                    "child_output_read_failed",
                    pid=self._child.pid,
                    bytes_sent=self.bytes_sent,
                    error=str(e),
                    exc_info=e,
                )
                self._child.kill()
                break
            if not data:
                break
            self._write(encode_chunk(data))
            forwarded += len(data)
            self.bytes_sent += len(data)
            self.chunks_sent += 1

        self._phase = EncoderPhase.BODY_DRAINED
        logger.debug(
            "encoder_body_drained",
            bytes_sent=self.bytes_sent,
            chunks_sent=self.chunks_sent,
        )
        return forwarded

    def finish_body(self) -> None:
        self._require(EncoderPhase.BODY_DRAINED, "finish_body")
        self._write(LAST_CHUNK)
        self._phase = EncoderPhase.BODY_FINISHED

    def await_child_and_emit_trailer(self) -> ResolvedStatus:
        """Reap the child and write the trailer carrying its final status."""
        self._require(EncoderPhase.BODY_FINISHED, "await_child_and_emit_trailer")
        assert self._child is not None
        self._outcome = self._child.wait()
        status = STATUS_FAILED if self._read_error else self._outcome.to_status()
        self._write(encode_deferred_trailer(status))
        self._phase = EncoderPhase.TRAILER_SENT

        log = logger.info if status.is_success else logger.warning
        log(
            "encoder_finished",
            pid=self._child.pid,
            outcome=str(self._outcome),
            status=str(status),
            bytes_sent=self.bytes_sent,
            chunks_sent=self.chunks_sent,
        )
        return status

    def run(self, command: str, args: Sequence[str] = ()) -> EncoderResult:
        """Run ``command`` and stream its output as a deferred response.

        Raises:
            LaunchError: If the command cannot be started; nothing has been
                written to the sink in that case
        """
        self.start(command, args)
        self.write_response_preamble()
        self.pump_body()
        self.finish_body()
        status = self.await_child_and_emit_trailer()
        assert self._outcome is not None
        return EncoderResult(
            status=status,
            outcome=self._outcome,
            bytes_sent=self.bytes_sent,
            chunks_sent=self.chunks_sent,
            read_error=self._read_error,
        )

    def write_error_response(self, status: ResolvedStatus, message: str) -> None:
        """Send an ordinary (non-deferred) error response.

        Only valid before the preamble: once streaming has begun the outcome
        can only travel in the trailer.
        """
        if self._phase > EncoderPhase.STARTED:
            raise EncoderStateError("response already committed")
        if self._child is not None:
            self._child.kill()
            self._outcome = self._child.wait()
        self._write(encode_plain_response(status, message.encode("utf-8") + b"\n"))
        self._phase = EncoderPhase.TRAILER_SENT
