import os
from pathlib import Path

"""Global constants and configuration path definitions for Git Convoy.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the fixed values used when driving git.
"""

# --- Identity ---
APP_NAME = "git-convoy"
"""str: The human-readable application name."""

APP_LABEL = "com.gitconvoy.sync"
"""str: The reverse-DNS style application identifier (systemd unit name)."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-convoy"
"""Path: The directory for runtime state data (logs)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "convoy.log"
"""Path: The file path for the sync process logs."""

# --- Configuration Paths ---
_XDG_CONFIG = os.environ.get("XDG_CONFIG_HOME")
CONFIG_DIR: Path = (
    Path(_XDG_CONFIG) if _XDG_CONFIG else Path.home() / ".config"
) / "git-convoy"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

TARGETS_FILE: Path = CONFIG_DIR / "targets.json"
"""Path: The persisted list of repository targets (contains credentials)."""

TARGETS_SCHEMA_VERSION = 1
"""int: The newest settings file layout this version understands."""

# --- Git / Logic Constants ---
COMMIT_MESSAGE_PREFIX = "Commit on"
"""str: Prefix of the timestamped commit message created by a push."""

CREDENTIAL_USER_ENV = "GIT_CONVOY_USERNAME"
"""str: Environment variable the inline credential helper reads the user from."""

CREDENTIAL_TOKEN_ENV = "GIT_CONVOY_TOKEN"
"""str: Environment variable the inline credential helper reads the token from."""

SUCCESS_NOTICE_DURATION = 4.0
"""float: Seconds a success notice stays visible."""

FAILURE_NOTICE_DURATION = 5.0
"""float: Seconds a failure notice stays visible (longer than success)."""
