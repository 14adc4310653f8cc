"""Tests for the deferred-status stream encoder."""

import io
import signal

import pytest
from structlog.testing import capture_logs

from dstatus.config.core import EncoderSettings
from dstatus.contract import STATUS_FAILED, STATUS_OK
from dstatus.core.errors import EncoderStateError, LaunchError, ReadFailure
from dstatus.process import ExitOutcome
from dstatus.streaming.encoder import EncoderPhase, StreamEncoder
from tests.helpers.wire import parse_chunked_response


PREAMBLE = (
    b"HTTP/1.1 208 Trailing Status\r\n"
    b"Transfer-Encoding: chunked\r\n"
    b"Trailer: X-Deferred-Status\r\n"
    b"\r\n"
)


@pytest.mark.unit
class TestStreamEncoderWithFakeChild:
    def test_body_is_forwarded_in_order(self, fake_spawner) -> None:
        spawner = fake_spawner([b"hello, ", b"world\n"])
        sink = io.BytesIO()

        result = StreamEncoder(sink, spawner=spawner).run("greet")

        assert sink.getvalue() == (
            PREAMBLE
            + b"7\r\nhello, \r\n"
            + b"6\r\nworld\n\r\n"
            + b"0\r\n"
            + b"X-Deferred-Status: 200 OK\r\n\r\n"
        )
        assert result.status == STATUS_OK
        assert result.bytes_sent == 13
        assert result.chunks_sent == 2
        assert result.read_error is None

    @pytest.mark.parametrize(
        "pieces",
        [
            [b"a" * 10],
            [b"a", b"b", b"c"],
            [b"x" * 3000, b"y" * 5, b"z" * 1025],
            [bytes(range(256)) * 4],
        ],
    )
    def test_dechunked_body_matches_child_output(self, fake_spawner, pieces) -> None:
        spawner = fake_spawner(pieces)
        sink = io.BytesIO()

        StreamEncoder(sink, EncoderSettings(block_size=1024), spawner=spawner).run(
            "producer"
        )

        parsed = parse_chunked_response(sink.getvalue())
        assert parsed.body == b"".join(pieces)
        assert all(0 < len(chunk) <= 1024 for chunk in parsed.chunks)
        assert parsed.terminal_chunks == 1
        assert parsed.trailers == [(b"X-Deferred-Status", b"200 OK")]

    def test_reads_are_bounded_by_block_size(self, fake_spawner) -> None:
        spawner = fake_spawner([b"q" * 100])
        sink = io.BytesIO()

        StreamEncoder(sink, EncoderSettings(block_size=16), spawner=spawner).run("q")

        assert spawner.child.output.max_requested == 16
        assert len(parse_chunked_response(sink.getvalue()).chunks) == 7

    def test_empty_output_has_only_terminal_chunk(self, fake_spawner) -> None:
        sink = io.BytesIO()
        result = StreamEncoder(sink, spawner=fake_spawner([])).run("true")

        assert sink.getvalue() == PREAMBLE + b"0\r\nX-Deferred-Status: 200 OK\r\n\r\n"
        assert result.chunks_sent == 0

    @pytest.mark.parametrize(
        "outcome",
        [
            ExitOutcome.exited(1),
            ExitOutcome.exited(255),
            ExitOutcome.signaled(signal.SIGTERM),
        ],
    )
    def test_unsuccessful_child_yields_failure_trailer(
        self, fake_spawner, outcome
    ) -> None:
        sink = io.BytesIO()
        result = StreamEncoder(sink, spawner=fake_spawner([b"partial"], outcome)).run(
            "fails"
        )

        assert sink.getvalue().endswith(
            b"0\r\nX-Deferred-Status: 500 Internal Server Error\r\n\r\n"
        )
        assert result.status == STATUS_FAILED
        assert result.outcome == outcome

    def test_content_type_is_announced(self, fake_spawner) -> None:
        sink = io.BytesIO()
        StreamEncoder(
            sink,
            EncoderSettings(content_type="application/json"),
            spawner=fake_spawner([b"{}"]),
        ).run("json")

        parsed = parse_chunked_response(sink.getvalue())
        assert (b"Content-Type", b"application/json") in parsed.headers

    def test_read_failure_still_emits_terminal_chunk_and_failure(
        self, fake_spawner
    ) -> None:
        spawner = fake_spawner([b"first", b"second"], fail_after=1)
        sink = io.BytesIO()

        with capture_logs() as logs:
            result = StreamEncoder(sink, spawner=spawner).run("flaky")

        parsed = parse_chunked_response(sink.getvalue())
        assert parsed.body == b"first"
        assert parsed.terminal_chunks == 1
        assert parsed.trailers == [
            (b"X-Deferred-Status", b"500 Internal Server Error")
        ]
        # The child exited 0 but the body is incomplete
        assert result.outcome.succeeded
        assert result.status == STATUS_FAILED
        assert isinstance(result.read_error, ReadFailure)
        assert isinstance(result.read_error.__cause__, OSError)
        assert spawner.child.killed
        assert any(log["event"] == "child_output_read_failed" for log in logs)

    def test_child_reaped_only_after_body_drained(self, fake_spawner) -> None:
        spawner = fake_spawner([b"data"])
        encoder = StreamEncoder(io.BytesIO(), spawner=spawner)

        encoder.start("cmd")
        encoder.write_response_preamble()
        encoder.pump_body()
        assert spawner.child.wait_calls == 0
        encoder.finish_body()
        assert spawner.child.wait_calls == 0
        encoder.await_child_and_emit_trailer()
        assert spawner.child.wait_calls == 1

    def test_merge_cgi_headers_passes_output_through(self, fake_spawner) -> None:
        sink = io.BytesIO()
        with capture_logs() as logs:
            StreamEncoder(
                sink,
                EncoderSettings(merge_cgi_headers=True),
                spawner=fake_spawner([b"Content-Type: text/html\r\n\r\n<p>"]),
            ).run("cgi")

        parsed = parse_chunked_response(sink.getvalue())
        assert parsed.body == b"Content-Type: text/html\r\n\r\n<p>"
        assert any(log["event"] == "cgi_header_merge_not_supported" for log in logs)


@pytest.mark.unit
class TestStreamEncoderOrdering:
    def test_operations_out_of_order_raise(self, fake_spawner) -> None:
        encoder = StreamEncoder(io.BytesIO(), spawner=fake_spawner([b"x"]))

        with pytest.raises(EncoderStateError):
            encoder.write_response_preamble()

        encoder.start("cmd")
        with pytest.raises(EncoderStateError):
            encoder.pump_body()

        encoder.write_response_preamble()
        with pytest.raises(EncoderStateError):
            encoder.finish_body()

        encoder.pump_body()
        with pytest.raises(EncoderStateError):
            encoder.await_child_and_emit_trailer()

        encoder.finish_body()
        encoder.await_child_and_emit_trailer()
        assert encoder.phase is EncoderPhase.TRAILER_SENT

        with pytest.raises(EncoderStateError):
            encoder.start("again")

    def test_nothing_is_written_when_launch_fails(self) -> None:
        def failing_spawner(command, args):
            raise LaunchError(command, "command not found")

        sink = io.BytesIO()
        encoder = StreamEncoder(sink, spawner=failing_spawner)

        with pytest.raises(LaunchError):
            encoder.run("missing")
        assert sink.getvalue() == b""

        encoder.write_error_response(STATUS_FAILED, "cannot launch 'missing'")
        assert sink.getvalue().startswith(b"HTTP/1.1 500 Internal Server Error\r\n")
        assert sink.getvalue().endswith(b"\r\n\r\ncannot launch 'missing'\n")

    def test_error_response_refused_after_preamble(self, fake_spawner) -> None:
        encoder = StreamEncoder(io.BytesIO(), spawner=fake_spawner([b"x"]))
        encoder.start("cmd")
        encoder.write_response_preamble()

        with pytest.raises(EncoderStateError):
            encoder.write_error_response(STATUS_FAILED, "too late")

    def test_sink_failure_kills_child_and_propagates(self, fake_spawner) -> None:
        class BrokenSink(io.BytesIO):
            def write(self, data):
                if data.startswith(b"HTTP/"):
                    return super().write(data)
                raise BrokenPipeError(32, "Broken pipe")

        spawner = fake_spawner([b"x" * 10])
        with pytest.raises(BrokenPipeError):
            StreamEncoder(BrokenSink(), spawner=spawner).run("cmd")
        assert spawner.child.killed
        assert spawner.child.wait_calls == 1


@pytest.mark.integration
class TestStreamEncoderWithRealProcess:
    def test_hello_world_end_to_end(self, python_command) -> None:
        command, args = python_command(
            "import sys; sys.stdout.write('hello, world\\n')"
        )
        sink = io.BytesIO()

        result = StreamEncoder(sink).run(command, args)

        assert sink.getvalue() == (
            PREAMBLE
            + b"d\r\nhello, world\n\r\n0\r\n"
            + b"X-Deferred-Status: 200 OK\r\n\r\n"
        )
        assert result.status == STATUS_OK

    def test_nonzero_exit(self, python_command) -> None:
        command, args = python_command("print('oops'); raise SystemExit(3)")
        sink = io.BytesIO()

        result = StreamEncoder(sink).run(command, args)

        parsed = parse_chunked_response(sink.getvalue())
        assert parsed.body == b"oops\n"
        assert parsed.trailers == [
            (b"X-Deferred-Status", b"500 Internal Server Error")
        ]
        assert result.outcome == ExitOutcome.exited(3)

    def test_signaled_child(self, python_command) -> None:
        command, args = python_command(
            "import os, signal, sys; sys.stdout.write('bye'); sys.stdout.flush(); "
            "os.kill(os.getpid(), signal.SIGKILL)"
        )
        sink = io.BytesIO()

        result = StreamEncoder(sink).run(command, args)

        assert parse_chunked_response(sink.getvalue()).body == b"bye"
        assert result.outcome == ExitOutcome.signaled(signal.SIGKILL)
        assert result.status == STATUS_FAILED

    def test_large_output_streams_through_small_blocks(self, python_command) -> None:
        command, args = python_command(
            "import sys\n"
            "for i in range(2000):\n"
            "    sys.stdout.write(f'line {i:05d}\\n')\n"
        )
        sink = io.BytesIO()

        result = StreamEncoder(sink, EncoderSettings(block_size=512)).run(
            command, args
        )

        parsed = parse_chunked_response(sink.getvalue())
        expected = "".join(f"line {i:05d}\n" for i in range(2000)).encode()
        assert parsed.body == expected
        assert all(len(chunk) <= 512 for chunk in parsed.chunks)
        assert result.bytes_sent == len(expected)
