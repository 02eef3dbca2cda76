"""Where progress goes: notification sinks and the console reporter.

A sink is anything with `notify(message, duration)`. Sinks are purely
observational; the orchestrator never consults them for decisions and
ignores their failures.
"""

from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.markup import escape

from . import system

if TYPE_CHECKING:
    from .orchestrator import SyncEvent


class NotificationSink(Protocol):
    def notify(self, message: str, duration: float) -> None: ...


class DesktopSink:
    """Raises desktop notifications through the platform strategy."""

    def __init__(self, strategy: system.SystemStrategy | None = None):
        self.strategy = strategy or system.get_system()

    def notify(self, message: str, duration: float) -> None:
        self.strategy.notify("Git Convoy", message, duration)


class ConsoleReporter:
    """Renders orchestrator events on the terminal with rich markup."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def __call__(self, event: "SyncEvent") -> None:
        phase = event.phase.value
        message = escape(event.message)
        if phase == "starting":
            self.console.print(f"[bold blue]SYNC:[/bold blue] {message}")
        elif phase == "succeeded":
            self.console.print(f"[bold green]SUCCESS:[/bold green] {message}")
        else:
            self.console.print(f"[bold red]ERROR:[/bold red] {message}")
