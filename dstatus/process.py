"""Child process supervision with captured standard output."""

import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from dstatus.contract import STATUS_FAILED, STATUS_OK, ResolvedStatus
from dstatus.core.errors import LaunchError


if TYPE_CHECKING:
    from dstatus.core.interfaces import OutputStream


logger = structlog.get_logger(__name__)


class ExitKind(str, Enum):
    EXITED = "exited"
    SIGNALED = "signaled"


@dataclass(frozen=True)
class ExitOutcome:
    """How a child process terminated."""

    kind: ExitKind
    code: int | None = None
    signal: int | None = None

    @classmethod
    def exited(cls, code: int) -> "ExitOutcome":
        return cls(ExitKind.EXITED, code=code)

    @classmethod
    def signaled(cls, signum: int) -> "ExitOutcome":
        return cls(ExitKind.SIGNALED, signal=signum)

    @classmethod
    def from_returncode(cls, returncode: int) -> "ExitOutcome":
        """Classify a ``Popen.returncode`` (negative means killed by a signal)."""
        if returncode < 0:
            return cls.signaled(-returncode)
        return cls.exited(returncode)

    @property
    def succeeded(self) -> bool:
        return self.kind is ExitKind.EXITED and self.code == 0

    @property
    def signal_name(self) -> str | None:
        if self.signal is None:
            return None
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return f"signal {self.signal}"

    def to_status(self) -> ResolvedStatus:
        return STATUS_OK if self.succeeded else STATUS_FAILED

    def __str__(self) -> str:
        if self.kind is ExitKind.SIGNALED:
            return f"killed by {self.signal_name}"
        return f"exited with code {self.code}"


class ChildProcess:
    """Handle on a spawned child: its output stream and its exit outcome."""

    def __init__(self, process: subprocess.Popen[bytes], command: Sequence[str]):
        self._process = process
        self.command = list(command)
        self._outcome: ExitOutcome | None = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def output(self) -> "OutputStream":
        assert self._process.stdout is not None
        return self._process.stdout

    def kill(self) -> None:
        """Kill the child unless it has already been reaped."""
        if self._outcome is None and self._process.poll() is None:
            logger.warning("child_process_killed", pid=self.pid)
            self._process.kill()

    def wait(self) -> ExitOutcome:
        """Reap the child; the outcome is captured once and then cached."""
        if self._outcome is None:
            returncode = self._process.wait()
            self.output.close()
            self._outcome = ExitOutcome.from_returncode(returncode)
            logger.debug(
                "child_process_exited",
                pid=self.pid,
                returncode=returncode,
                outcome=str(self._outcome),
            )
        return self._outcome


def spawn(
    command: str,
    args: Sequence[str] = (),
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | Path | None = None,
) -> ChildProcess:
    """Start ``command`` with its stdout connected to a pipe.

    The pipe is unbuffered on our side so each read returns whatever the child
    has produced so far. Stdin and stderr are inherited.

    Raises:
        LaunchError: If the command cannot be started
    """
    argv = [command, *args]
    try:
        process = subprocess.Popen(
            argv,
            stdout=subprocess.PIPE,
            bufsize=0,
            env=dict(env) if env is not None else None,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        raise LaunchError(command, "command not found") from e
    except PermissionError as e:
        raise LaunchError(command, "permission denied") from e
    except OSError as e:
        raise LaunchError(command, e.strerror or str(e)) from e

    logger.debug("child_process_started", pid=process.pid, argv=argv)
    return ChildProcess(process, argv)
