import logging
import os
import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from .config import Config, NotifyConfig
from .constants import APP_NAME
from .notify import NotificationSink
from .runner import FailureReason
from .sync import MergeStrategy, OperationKind, SyncOperation, SyncOutcome
from .targets import RepositoryTarget, SettingsError, TargetStore

logger = logging.getLogger(APP_NAME)

_ACTIONS = {
    OperationKind.PUSH: "commit & push",
    OperationKind.PULL: "pull",
    OperationKind.SET_MERGE_STRATEGY: "merge strategy update",
}


class EventPhase(Enum):
    STARTING = "starting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncEvent:
    """A progress notice for one target.

    Attributes:
        target_id (str): The target the event concerns.
        label (str): A credential-free display name for the target.
        kind (OperationKind): The operation in progress.
        phase (EventPhase): Starting, or the terminal status.
        detail (str): The outcome detail (error text on failure).
    """

    target_id: str
    label: str
    kind: OperationKind
    phase: EventPhase
    detail: str = ""

    @property
    def message(self) -> str:
        """The human-readable notice text."""
        action = _ACTIONS[self.kind]
        if self.phase is EventPhase.STARTING:
            return f"Starting {action} for {self.label}"
        if self.phase is EventPhase.SUCCEEDED:
            suffix = f" ({self.detail})" if self.detail else ""
            return f"{action.capitalize()} succeeded for {self.label}{suffix}"
        return f"{action.capitalize()} failed for {self.label}: {self.detail}"


class Orchestrator:
    """Applies sync operations across every configured target.

    The orchestrator reads the target collection through `TargetStore.snapshot`
    at the start of each run and never mutates it. Each target is isolated: a
    failure (or even an unexpected exception) for one target becomes a failed
    outcome for that target only, and the run carries on.

    Attributes:
        store (TargetStore): The target collection.
        operation (SyncOperation): Executes the per-target git work.
        sinks (list[NotificationSink]): Receive `(message, duration)` notices.
        on_event (Callable[[SyncEvent], None] | None): Receives raw events.
        notify_config (NotifyConfig): Display durations for notices.
        max_workers (int): Targets processed in parallel (1 = sequential).
    """

    def __init__(
        self,
        store: TargetStore,
        operation: SyncOperation,
        sinks: Iterable[NotificationSink] = (),
        on_event: Callable[[SyncEvent], None] | None = None,
        notify_config: NotifyConfig | None = None,
        max_workers: int = 1,
    ):
        self.store = store
        self.operation = operation
        self.sinks = list(sinks)
        self.on_event = on_event
        self.notify_config = notify_config or NotifyConfig()
        self.max_workers = max(1, max_workers)
        self._emit_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: TargetStore,
        sinks: Iterable[NotificationSink] = (),
        on_event: Callable[[SyncEvent], None] | None = None,
    ) -> "Orchestrator":
        return cls(
            store,
            SyncOperation.from_config(config),
            sinks=sinks,
            on_event=on_event,
            notify_config=config.notify,
            max_workers=config.run.max_workers,
        )

    # --- Runs ---

    def run_all(self, kind: OperationKind) -> list[SyncOutcome]:
        """Runs one operation kind over every target enabled for it.

        Args:
            kind (OperationKind): PUSH or PULL.

        Returns:
            list[SyncOutcome]: One outcome per enabled target, in collection order.

        Raises:
            ValueError: If `kind` is not a sync operation.
            SettingsError: If the target collection cannot be read. No target
                           runs in that case.
        """
        if not kind.is_sync:
            raise ValueError(f"Not a sync operation: {kind}")

        try:
            snapshot = self.store.snapshot()
        except SettingsError:
            raise
        except Exception as e:
            raise SettingsError(f"Target collection unavailable: {e}") from e

        targets = [t for t in snapshot if t.is_enabled_for(kind)]
        logger.info(
            f"RUN {kind.value}: {len(targets)} of {len(snapshot)} target(s) enabled."
        )

        if self.max_workers > 1 and len(targets) > 1:
            return self._run_concurrent(targets, kind)
        return [self._process(t, kind, self.operation.execute) for t in targets]

    def sync_all(self) -> list[SyncOutcome]:
        """Pushes every push-enabled target, then pulls every pull-enabled one."""
        return self.run_all(OperationKind.PUSH) + self.run_all(OperationKind.PULL)

    def run_one(
        self, target: RepositoryTarget | str, kind: OperationKind
    ) -> SyncOutcome:
        """Runs a push or pull against a single target, regardless of its flags.

        Args:
            target (RepositoryTarget | str): The target, or its id.
            kind (OperationKind): PUSH or PULL.

        Raises:
            UnknownTargetError: If an id is given that the store does not know.
            ValueError: If `kind` is not a sync operation.
        """
        if not kind.is_sync:
            raise ValueError(f"Not a sync operation: {kind}")
        return self._process(self._resolve(target), kind, self.operation.execute)

    def set_merge_strategy(
        self, target: RepositoryTarget | str, strategy: MergeStrategy
    ) -> SyncOutcome:
        """Sets a target's pull reconciliation strategy (merge or rebase).

        Raises:
            UnknownTargetError: If an id is given that the store does not know.
        """
        return self._process(
            self._resolve(target),
            OperationKind.SET_MERGE_STRATEGY,
            lambda t, _kind: self.operation.set_merge_strategy(t, strategy),
        )

    # --- Internals ---

    def _resolve(self, target: RepositoryTarget | str) -> RepositoryTarget:
        if isinstance(target, RepositoryTarget):
            return target
        return self.store.get(target)

    def _process(
        self,
        target: RepositoryTarget,
        kind: OperationKind,
        action: Callable[[RepositoryTarget, OperationKind], SyncOutcome],
    ) -> SyncOutcome:
        """Runs one action against one target behind the isolation boundary."""
        try:
            logger.info(f"STARTING {kind.value} {target.label} [{target.id}]")
            self._emit(SyncEvent(target.id, target.label, kind, EventPhase.STARTING))
            outcome = action(target, kind)
        except Exception as e:
            logger.exception(f"LOOP ERROR {target.label} [{target.id}]")
            outcome = SyncOutcome.failure(
                target, kind, f"Internal error: {e}", FailureReason.INTERNAL
            )

        if outcome.succeeded:
            logger.info(f"SUCCESS {target.label}: {kind.value} ({outcome.detail})")
            phase = EventPhase.SUCCEEDED
        else:
            logger.error(f"FAILED {target.label}: {kind.value}: {outcome.detail}")
            phase = EventPhase.FAILED

        self._emit(SyncEvent(target.id, target.label, kind, phase, outcome.detail))
        return outcome

    def _run_concurrent(
        self, targets: Sequence[RepositoryTarget], kind: OperationKind
    ) -> list[SyncOutcome]:
        """Runs targets in parallel, never two at once in the same working copy."""
        groups: dict[str, list[tuple[int, RepositoryTarget]]] = {}
        for index, target in enumerate(targets):
            groups.setdefault(_working_copy_key(target), []).append((index, target))

        def run_group(
            members: list[tuple[int, RepositoryTarget]],
        ) -> list[tuple[int, SyncOutcome]]:
            return [
                (i, self._process(t, kind, self.operation.execute)) for i, t in members
            ]

        results: list[SyncOutcome | None] = [None] * len(targets)
        workers = min(self.max_workers, len(groups))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(run_group, members) for members in groups.values()]
            for future in futures:
                for index, outcome in future.result():
                    results[index] = outcome

        return [outcome for outcome in results if outcome is not None]

    def _emit(self, event: SyncEvent) -> None:
        """Delivers an event to every observer. Observer failures are logged only."""
        duration = (
            self.notify_config.failure_duration
            if event.phase is EventPhase.FAILED
            else self.notify_config.success_duration
        )
        with self._emit_lock:
            for sink in self.sinks:
                try:
                    sink.notify(event.message, duration)
                except Exception as e:
                    name = type(sink).__name__
                    logger.warning(f"Notification sink {name} failed: {e}")
            if self.on_event is not None:
                try:
                    self.on_event(event)
                except Exception as e:
                    logger.warning(f"Event listener failed: {e}")


def _working_copy_key(target: RepositoryTarget) -> str:
    if not target.local_path.strip():
        return f"<unset:{target.id}>"
    return os.path.realpath(os.path.expanduser(target.local_path))
