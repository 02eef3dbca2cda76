import logging
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class FailureReason(Enum):
    """Why a target-scoped operation failed."""

    SPAWN_FAILURE = "spawn_failure"
    NON_ZERO_EXIT = "non_zero_exit"
    UNEXPECTED_STDERR = "unexpected_stderr"
    TIMEOUT = "timeout"
    INVALID_TARGET = "invalid_target"
    INTERNAL = "internal"


@dataclass(frozen=True)
class CommandOutput:
    """The captured result of a command that completed successfully.

    Attributes:
        args (tuple[str, ...]): The argument vector that was executed.
        returncode (int): The process exit status (always 0).
        stdout (str): Captured standard output.
        stderr (str): Captured standard error (empty unless stderr is tolerated).
    """

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str = ""


class CommandError(Exception):
    """Base class for every way an external command can fail.

    Attributes:
        args_vector (tuple[str, ...]): The argument vector that was executed.
        returncode (int | None): The exit status, if the process ran to completion.
        stdout (str): Captured standard output, if any.
        stderr (str): Captured standard error, if any.
    """

    reason = FailureReason.NON_ZERO_EXIT

    def __init__(
        self,
        args_vector: Sequence[str],
        message: str,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.args_vector = tuple(args_vector)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def command(self) -> str:
        """The executed command rendered for humans."""
        return " ".join(self.args_vector)


class SpawnFailure(CommandError):
    """The process could not be started (missing binary, bad working directory)."""

    reason = FailureReason.SPAWN_FAILURE


class NonZeroExit(CommandError):
    """The process ran and reported failure through its exit status."""

    reason = FailureReason.NON_ZERO_EXIT


class UnexpectedStderr(CommandError):
    """The process exited 0 but wrote diagnostics to its error stream."""

    reason = FailureReason.UNEXPECTED_STDERR


class CommandTimeout(CommandError):
    """The process exceeded its time budget and was killed."""

    reason = FailureReason.TIMEOUT


class CommandRunner:
    """Executes external commands and reduces their outcome to a result or an error.

    The runner knows nothing about repositories. Each call spawns exactly one
    process, waits for it to exit and never retries.

    Attributes:
        timeout (float | None): Seconds before a process is killed, or None.
        stderr_is_failure (bool): Whether stderr output on exit 0 is an error.
    """

    def __init__(self, timeout: float | None = None, stderr_is_failure: bool = True):
        self.timeout = timeout or None
        self.stderr_is_failure = stderr_is_failure

    def run(
        self,
        args: Sequence[str],
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
    ) -> CommandOutput:
        """Runs a command to completion in the given working directory.

        Args:
            args (Sequence[str]): The argument vector, program first.
            cwd (str | Path): The directory the process runs in.
            env (Mapping[str, str] | None, optional): A complete environment for the
                                                      child. Defaults to inheriting.

        Returns:
            CommandOutput: The captured output of a successful run.

        Raises:
            SpawnFailure: If the process could not be started.
            CommandTimeout: If the process ran longer than `timeout`.
            NonZeroExit: If the process exited with a non-zero status.
            UnexpectedStderr: If the process exited 0 but wrote to stderr.
        """
        argv = tuple(args)
        logger.debug(f"RUN {argv[0] if argv else '?'} in {cwd}")
        try:
            res = subprocess.run(
                list(argv),
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandTimeout(
                argv,
                f"Timed out after {self.timeout:g}s",
                stdout=_as_text(e.stdout),
                stderr=_as_text(e.stderr),
            ) from e
        except OSError as e:
            raise SpawnFailure(argv, f"Could not start process: {e}") from e

        stdout = res.stdout or ""
        stderr = res.stderr or ""

        if res.returncode != 0:
            raise NonZeroExit(
                argv,
                f"Exit status {res.returncode}: {stderr.strip() or stdout.strip()}",
                returncode=res.returncode,
                stdout=stdout,
                stderr=stderr,
            )
        if stderr.strip() and self.stderr_is_failure:
            raise UnexpectedStderr(
                argv,
                f"Unexpected error output: {stderr.strip()}",
                returncode=0,
                stdout=stdout,
                stderr=stderr,
            )

        return CommandOutput(argv, res.returncode, stdout, stderr)


def _as_text(data: str | bytes | None) -> str:
    """Normalises partial output captured on timeout."""
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data
