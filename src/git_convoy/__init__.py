"""Git Convoy: keep a fleet of git repositories pushed and pulled.

This package provides the command-line interface, the unattended sync pass
run by the periodic service, and the orchestration core that drives git
across many independently configured repository targets.
"""

from . import (
    cli,
    config,
    constants,
    credentials,
    daemon,
    git_wrapper,
    notify,
    orchestrator,
    runner,
    service,
    sync,
    system,
    targets,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "credentials",
    "daemon",
    "git_wrapper",
    "notify",
    "orchestrator",
    "runner",
    "service",
    "sync",
    "system",
    "targets",
]
