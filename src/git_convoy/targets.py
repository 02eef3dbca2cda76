import contextlib
import copy
import json
import logging
import os
import threading
import uuid
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from .constants import APP_NAME, TARGETS_FILE, TARGETS_SCHEMA_VERSION
from .credentials import normalize_link

logger = logging.getLogger(APP_NAME)

# Keys used by the single-repository settings layout.
_LEGACY_KEYS = {
    "gitLink": "remote_link",
    "username": "username",
    "gitKey": "access_token",
    "gitFolderPath": "local_path",
}


class SettingsError(Exception):
    """The target collection could not be loaded or saved."""


class UnknownTargetError(KeyError):
    """No target with the requested id exists."""

    def __str__(self) -> str:
        return f"Unknown target: {self.args[0]}"


def new_target_id() -> str:
    """Generates a short random identifier for a target."""
    return uuid.uuid4().hex[:8]


@dataclass
class RepositoryTarget:
    """One repository to keep synchronized with its remote.

    Attributes:
        id (str): Stable identifier, unique within its store.
        remote_link (str): Host and path of the remote, without scheme.
        username (str): Account name used to authenticate.
        access_token (str): Token or password used to authenticate.
        local_path (str): Path of the working copy.
        push_enabled (bool): Whether push runs include this target.
        pull_enabled (bool): Whether pull runs include this target.
    """

    id: str = field(default_factory=new_target_id)
    remote_link: str = ""
    username: str = field(default="")
    access_token: str = field(default="", repr=False)
    local_path: str = ""
    push_enabled: bool = True
    pull_enabled: bool = True

    @classmethod
    def default(cls) -> "RepositoryTarget":
        """Returns a target with empty fields and both operations enabled."""
        return cls()

    @property
    def label(self) -> str:
        """A short name for notices and logs. Never contains credentials."""
        name = Path(self.local_path).name if self.local_path else ""
        return name or self.remote_link or self.id

    def is_enabled_for(self, kind: Any) -> bool:
        """Whether a run of the given operation kind includes this target."""
        value = getattr(kind, "value", kind)
        if value == "push":
            return self.push_enabled
        if value == "pull":
            return self.pull_enabled
        return False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RepositoryTarget":
        """Builds a target from a settings entry, ignoring unknown keys.

        Raises:
            TypeError: If an enable flag is not a boolean.
        """
        valid = {f.name for f in fields(cls)}
        unknown = set(data) - valid
        if unknown:
            logger.warning(
                f"Unknown target keys: {', '.join(sorted(unknown))}. Ignoring."
            )
        values = {k: v for k, v in data.items() if k in valid}
        for name in ("push_enabled", "pull_enabled"):
            if name in values and not isinstance(values[name], bool):
                raise TypeError(f"{name} must be true or false, got {values[name]!r}")
        for name in ("id", "remote_link", "username", "access_token", "local_path"):
            if name in values:
                values[name] = "" if values[name] is None else str(values[name])

        target = cls(**values)
        target.remote_link = normalize_link(target.remote_link)
        return target


_EDITABLE_FIELDS = {f.name for f in fields(RepositoryTarget)} - {"id"}


class TargetStore:
    """The ordered, persisted collection of repository targets.

    Every mutation is written to disk immediately. Runs never read the live
    list; they take a `snapshot()` so edits made while a run is in progress
    are never observed half-applied.

    Attributes:
        path (Path): The JSON settings file.
    """

    def __init__(self, path: Path = TARGETS_FILE):
        self.path = path
        self._targets: list[RepositoryTarget] = []
        self._lock = threading.RLock()

    @classmethod
    def open(cls, path: Path = TARGETS_FILE) -> "TargetStore":
        """Creates a store and loads its contents from disk."""
        store = cls(path)
        store.load()
        return store

    # --- Persistence ---

    def load(self) -> None:
        """Replaces the in-memory collection with the contents of the settings file.

        Raises:
            SettingsError: If the file exists but cannot be read or understood.
        """
        if not self.path.exists():
            with self._lock:
                self._targets = []
            return

        try:
            content = self.path.read_text()
            data = json.loads(content) if content.strip() else {}
        except (OSError, json.JSONDecodeError) as e:
            raise SettingsError(f"Could not read {self.path}: {e}") from e

        targets = self._parse(data)
        with self._lock:
            self._targets = targets
        logger.debug(f"Loaded {len(targets)} target(s) from {self.path}")

    def _parse(self, data: Any) -> list[RepositoryTarget]:
        if not isinstance(data, dict):
            raise SettingsError(
                f"Malformed settings in {self.path}: expected an object"
            )

        if "repos" not in data and any(k in data for k in _LEGACY_KEYS):
            logger.info("Migrating single-repository settings to a target list.")
            entry = {new: data.get(old, "") for old, new in _LEGACY_KEYS.items()}
            return [RepositoryTarget.from_dict(entry)]

        version = data.get("version", TARGETS_SCHEMA_VERSION)
        if not isinstance(version, int) or version > TARGETS_SCHEMA_VERSION:
            raise SettingsError(
                f"Settings version {version!r} in {self.path} is not supported "
                f"(newest known: {TARGETS_SCHEMA_VERSION})"
            )

        repos = data.get("repos", [])
        if not isinstance(repos, list):
            raise SettingsError(
                f"Malformed settings in {self.path}: 'repos' is not a list"
            )

        targets: list[RepositoryTarget] = []
        seen: set[str] = set()
        for entry in repos:
            if not isinstance(entry, dict):
                kind = type(entry).__name__
                logger.warning(f"Skipping malformed target entry: {kind}")
                continue
            try:
                target = RepositoryTarget.from_dict(entry)
            except TypeError as e:
                logger.warning(f"Skipping malformed target entry: {e}")
                continue
            if not target.id or target.id in seen:
                old_id = target.id
                target.id = self._fresh_id(seen)
                logger.warning(
                    f"Duplicate target id '{old_id}' re-keyed to '{target.id}'."
                )
            seen.add(target.id)
            targets.append(target)
        return targets

    def save(self) -> None:
        """Persists the collection atomically.

        Raises:
            SettingsError: If the file cannot be written.
        """
        with self._lock:
            data = {
                "version": TARGETS_SCHEMA_VERSION,
                "repos": [t.to_dict() for t in self._targets],
            }

        tmp_file = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_file, self.path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_file.unlink()
            raise SettingsError(f"Could not write {self.path}: {e}") from e

    # --- Queries ---

    def targets(self) -> list[RepositoryTarget]:
        """Returns copies of the current targets, in order."""
        return list(self.snapshot())

    def snapshot(self) -> tuple[RepositoryTarget, ...]:
        """Returns an immutable, point-in-time copy of the collection."""
        with self._lock:
            return tuple(copy.deepcopy(t) for t in self._targets)

    def get(self, target_id: str) -> RepositoryTarget:
        """Returns a copy of a single target.

        Raises:
            UnknownTargetError: If no such target exists.
        """
        with self._lock:
            return copy.deepcopy(self._find(target_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._targets)

    # --- Mutations ---

    def add(self, **values: Any) -> RepositoryTarget:
        """Appends a new target and persists the collection.

        Args:
            **values: Initial field values. Unset fields take their defaults.

        Returns:
            RepositoryTarget: A copy of the stored target.
        """
        self._check_fields(values)
        with self._lock:
            target = RepositoryTarget(id=self._fresh_id({t.id for t in self._targets}))
            self._apply(target, values)
            self._targets.append(target)
            result = copy.deepcopy(target)
        self.save()
        logger.info(f"ADDED target {result.id} ({result.label})")
        return result

    def update(self, target_id: str, **values: Any) -> RepositoryTarget:
        """Changes fields of an existing target and persists the collection.

        Raises:
            UnknownTargetError: If no such target exists.
            ValueError: If an unknown or read-only field is given.
        """
        self._check_fields(values)
        with self._lock:
            target = self._find(target_id)
            self._apply(target, values)
            result = copy.deepcopy(target)
        self.save()
        logger.info(f"UPDATED target {target_id}: {', '.join(sorted(values))}")
        return result

    def remove(self, target_id: str) -> RepositoryTarget:
        """Deletes a target and persists the collection.

        Raises:
            UnknownTargetError: If no such target exists.
        """
        with self._lock:
            target = self._find(target_id)
            self._targets.remove(target)
        self.save()
        logger.info(f"REMOVED target {target_id} ({target.label})")
        return target

    # --- Helpers ---

    def _find(self, target_id: str) -> RepositoryTarget:
        for target in self._targets:
            if target.id == target_id:
                return target
        raise UnknownTargetError(target_id)

    @staticmethod
    def _fresh_id(taken: set[str]) -> str:
        while (candidate := new_target_id()) in taken:
            pass
        return candidate

    @staticmethod
    def _check_fields(values: dict[str, Any]) -> None:
        invalid = set(values) - _EDITABLE_FIELDS
        if invalid:
            raise ValueError(
                f"Unknown or read-only target fields: {', '.join(sorted(invalid))}"
            )

    @staticmethod
    def _apply(target: RepositoryTarget, values: dict[str, Any]) -> None:
        for key, value in values.items():
            if key == "remote_link":
                value = normalize_link(str(value))
            elif key in ("push_enabled", "pull_enabled"):
                value = bool(value)
            else:
                value = str(value)
            setattr(target, key, value)
