import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    FAILURE_NOTICE_DURATION,
    SUCCESS_NOTICE_DURATION,
)

logger = logging.getLogger(APP_NAME)

CREDENTIAL_MODES = ("helper", "url")


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def parse_credential_mode(value: str) -> str:
    """Validates the credential injection mode."""
    mode = str(value).strip().lower()
    if mode not in CREDENTIAL_MODES:
        raise ValueError(
            f"Invalid credential mode '{value}' (expected one of "
            f"{', '.join(CREDENTIAL_MODES)})"
        )
    return mode


def parse_positive_int(value: int | str) -> int:
    """Accepts integers >= 1."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"Expected a positive integer, got '{value}'")
    return value


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        git_binary (str): The git executable to invoke.
        command_timeout (int): Seconds before a git process is killed. 0 disables.
        credential_mode (str): 'helper' (env-injected) or 'url' (embedded).
        stderr_is_failure (bool): Treat stderr output on exit 0 as a failure.
    """

    git_binary: str = "git"
    command_timeout: int = 120
    credential_mode: str = "helper"
    stderr_is_failure: bool = True


@dataclass
class RunConfig:
    """Run scheduling settings.

    Attributes:
        max_workers (int): Targets processed in parallel (1 = sequential).
        interval (int): Seconds between periodic runs of the installed service.
    """

    max_workers: int = 1
    interval: int = 900


@dataclass
class NotifyConfig:
    """Notification settings.

    Attributes:
        success_duration (float): Display time of progress and success notices.
        failure_duration (float): Display time of failure notices.
        desktop (bool): Whether to also raise desktop notifications.
    """

    success_duration: float = SUCCESS_NOTICE_DURATION
    failure_duration: float = FAILURE_NOTICE_DURATION
    desktop: bool = False


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        run (RunConfig): Scheduling settings.
        notify (NotifyConfig): Notification settings.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    run: RunConfig = field(default_factory=RunConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from disk, applying defaults where necessary.

        Args:
            path (Path | None): An explicit config file. Defaults to CONFIG_FILE.

        Returns:
            Config: The populated configuration object.
        """
        instance = cls()
        source = path or CONFIG_FILE
        if source.exists():
            instance._merge_from_file(source)
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if not data:
                return

            unknown = set(data) - {"core", "run", "notify", "limits"}
            if unknown:
                logger.warning(
                    f"Unknown config sections in {path.name}: "
                    f"{', '.join(sorted(unknown))}. Ignoring."
                )

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "run" in data:
                self.run = self._update_dataclass("run", self.run, data["run"])
            if "notify" in data:
                self.notify = self._update_dataclass(
                    "notify", self.notify, data["notify"]
                )
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "command_timeout":
                    seconds = parse_time(v)
                    if seconds < 0:
                        raise ValueError(f"Timeout cannot be negative, got '{v}'")
                    filtered_updates[k] = seconds
                elif k == "interval":
                    seconds = parse_time(v)
                    if seconds < 1:
                        raise ValueError(f"Interval must be at least 1s, got '{v}'")
                    filtered_updates[k] = seconds
                elif k == "credential_mode":
                    filtered_updates[k] = parse_credential_mode(v)
                elif k == "max_workers":
                    filtered_updates[k] = parse_positive_int(v)
                elif k in ["success_duration", "failure_duration"]:
                    if isinstance(v, bool) or not isinstance(v, (int, float)):
                        raise ValueError(f"Expected seconds, got '{v}'")
                    filtered_updates[k] = float(v)
                elif k in ["stderr_is_failure", "desktop"]:
                    if not isinstance(v, bool):
                        raise ValueError(f"Expected true or false, got '{v}'")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
