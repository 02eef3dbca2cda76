import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from . import credentials
from .config import Config
from .constants import APP_NAME, COMMIT_MESSAGE_PREFIX
from .git_wrapper import GitRepo
from .runner import CommandError, CommandRunner, FailureReason
from .targets import RepositoryTarget

logger = logging.getLogger(APP_NAME)


class OperationKind(Enum):
    """What an operation does to a target."""

    PUSH = "push"
    PULL = "pull"
    SET_MERGE_STRATEGY = "set_merge_strategy"

    @property
    def is_sync(self) -> bool:
        """Whether this kind can be applied by a full run."""
        return self in (OperationKind.PUSH, OperationKind.PULL)


class MergeStrategy(Enum):
    """How a working copy reconciles pulled changes."""

    MERGE = "merge"
    REBASE = "rebase"


class SyncStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    """The result of one operation on one target.

    Attributes:
        target_id (str): The id of the target the operation ran against.
        kind (OperationKind): The operation that ran.
        status (SyncStatus): Succeeded or failed.
        detail (str): A human-readable summary or error. Never contains credentials.
        reason (FailureReason | None): Why it failed, or None on success.
    """

    target_id: str
    kind: OperationKind
    status: SyncStatus
    detail: str = ""
    reason: FailureReason | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is SyncStatus.SUCCEEDED

    @classmethod
    def success(
        cls, target: RepositoryTarget, kind: OperationKind, detail: str = ""
    ) -> "SyncOutcome":
        return cls(target.id, kind, SyncStatus.SUCCEEDED, detail)

    @classmethod
    def failure(
        cls,
        target: RepositoryTarget,
        kind: OperationKind,
        detail: str,
        reason: FailureReason,
    ) -> "SyncOutcome":
        return cls(target.id, kind, SyncStatus.FAILED, detail, reason)


def commit_message(now: datetime.datetime | None = None) -> str:
    """Builds the timestamped message used for push commits.

    Args:
        now (datetime.datetime | None, optional): The commit time. Defaults to now.

    Returns:
        str: e.g. 'Commit on 2024-05-01T09:30:12.345Z'.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    stamp = now.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds")
    return f"{COMMIT_MESSAGE_PREFIX} {stamp.replace('+00:00', 'Z')}"


class SyncOperation:
    """Turns a (target, operation) pair into git commands and interprets the result.

    `execute` and `set_merge_strategy` never raise for problems scoped to a
    target: every failure is reduced to a failed `SyncOutcome`.

    Attributes:
        runner (CommandRunner): Executes the git processes.
        git_binary (str): The git executable.
        credential_mode (str): 'helper' or 'url' (see `credentials`).
        clock (Callable[[], datetime.datetime]): Source of commit timestamps.
    """

    def __init__(
        self,
        runner: CommandRunner,
        git_binary: str = "git",
        credential_mode: str = "helper",
        clock: Callable[[], datetime.datetime] | None = None,
    ):
        self.runner = runner
        self.git_binary = git_binary
        self.credential_mode = credential_mode
        self.clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    @classmethod
    def from_config(cls, config: Config) -> "SyncOperation":
        """Builds an operation with a runner configured from settings."""
        runner = CommandRunner(
            timeout=config.core.command_timeout,
            stderr_is_failure=config.core.stderr_is_failure,
        )
        return cls(
            runner,
            git_binary=config.core.git_binary,
            credential_mode=config.core.credential_mode,
        )

    def repo_for(self, target: RepositoryTarget) -> GitRepo:
        """Builds the git wrapper for a target, wiring in its credentials."""
        if self.credential_mode == "url":
            return GitRepo(
                target.local_path,
                self.runner,
                git_binary=self.git_binary,
                remote_env=credentials.batch_env(),
            )
        return GitRepo(
            target.local_path,
            self.runner,
            git_binary=self.git_binary,
            remote_env=credentials.batch_env(
                credentials.helper_env(target.username, target.access_token)
            ),
            remote_args=credentials.git_config_args(),
        )

    def remote_url_for(self, target: RepositoryTarget) -> str:
        return credentials.remote_url(
            target.remote_link,
            target.username,
            target.access_token,
            embed=self.credential_mode == "url",
        )

    def execute(self, target: RepositoryTarget, kind: OperationKind) -> SyncOutcome:
        """Runs a push or pull against one target.

        Args:
            target (RepositoryTarget): The target to synchronize.
            kind (OperationKind): PUSH or PULL.

        Returns:
            SyncOutcome: The outcome, tagged with the target's id.

        Raises:
            ValueError: If `kind` is not a sync operation.
        """
        if kind is OperationKind.PUSH:
            step = self._push
        elif kind is OperationKind.PULL:
            step = self._pull
        else:
            raise ValueError(f"Not a sync operation: {kind}")

        if problem := self._validate(target, needs_remote=True):
            return SyncOutcome.failure(
                target, kind, problem, FailureReason.INVALID_TARGET
            )

        return self._guarded(target, kind, step)

    def set_merge_strategy(
        self, target: RepositoryTarget, strategy: MergeStrategy
    ) -> SyncOutcome:
        """Persists the pull reconciliation strategy in a target's working copy.

        Args:
            target (RepositoryTarget): The target to configure.
            strategy (MergeStrategy): MERGE or REBASE.

        Returns:
            SyncOutcome: The outcome of `git config pull.rebase <bool>`.
        """
        kind = OperationKind.SET_MERGE_STRATEGY
        if problem := self._validate(target, needs_remote=False):
            return SyncOutcome.failure(
                target, kind, problem, FailureReason.INVALID_TARGET
            )

        rebase = strategy is MergeStrategy.REBASE

        def step(t: RepositoryTarget) -> str:
            self.repo_for(t).set_pull_rebase(rebase)
            return f"pull.rebase={'true' if rebase else 'false'}"

        return self._guarded(target, kind, step)

    # --- Steps ---

    def _push(self, target: RepositoryTarget) -> str:
        repo = self.repo_for(target)
        repo.add_all()
        if repo.has_staged_changes():
            repo.commit(commit_message(self.clock()))
            detail = "committed and pushed"
        else:
            logger.info(f"NO CHANGES {target.label}: nothing to commit.")
            detail = "nothing to commit; pushed"
        repo.push(self.remote_url_for(target))
        return detail

    def _pull(self, target: RepositoryTarget) -> str:
        self.repo_for(target).pull(self.remote_url_for(target))
        return "pulled"

    # --- Helpers ---

    def _guarded(
        self,
        target: RepositoryTarget,
        kind: OperationKind,
        step: Callable[[RepositoryTarget], str],
    ) -> SyncOutcome:
        try:
            detail = step(target)
        except CommandError as e:
            detail = self._render_error(target, e)
            return SyncOutcome.failure(target, kind, detail, e.reason)
        return SyncOutcome.success(target, kind, detail)

    def _render_error(self, target: RepositoryTarget, error: CommandError) -> str:
        step = _verb(error.args_vector)
        message = f"{step} failed: {error}" if step else str(error)
        return credentials.redact(message, [target.access_token])

    @staticmethod
    def _validate(target: RepositoryTarget, needs_remote: bool) -> str | None:
        if not target.local_path.strip():
            return "No local path configured"
        if needs_remote and not target.remote_link.strip():
            return "No remote link configured"
        return None


def _verb(args: tuple[str, ...]) -> str:
    """Finds the git verb in an argument vector, skipping global `-c` options."""
    skip = False
    for arg in args[1:]:
        if skip:
            skip = False
            continue
        if arg == "-c":
            skip = True
            continue
        if not arg.startswith("-"):
            return f"git {arg}"
    return ""
