from unittest.mock import MagicMock

from rich.console import Console

from git_convoy import system
from git_convoy.notify import ConsoleReporter, DesktopSink
from git_convoy.orchestrator import EventPhase, SyncEvent
from git_convoy.sync import OperationKind


def test_get_system_by_platform(mocker: MagicMock) -> None:
    """Verifies the factory picks the platform strategy.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mocker.patch("sys.platform", "darwin")
    assert isinstance(system.get_system(), system.MacOSStrategy)

    mocker.patch("sys.platform", "linux")
    assert isinstance(system.get_system(), system.LinuxStrategy)

    mocker.patch("sys.platform", "win32")
    assert type(system.get_system()) is system.SystemStrategy


def test_linux_notify_passes_duration(mocker: MagicMock) -> None:
    mock_run = mocker.patch("subprocess.run")

    system.LinuxStrategy().notify("Git Convoy", "Pull failed for notes", 5.0)

    cmd = mock_run.call_args[0][0]
    assert cmd == ["notify-send", "-t", "5000", "Git Convoy", "Pull failed for notes"]


def test_linux_notify_without_notify_send(mocker: MagicMock) -> None:
    """Verifies a missing notifier is tolerated."""
    mocker.patch("subprocess.run", side_effect=FileNotFoundError)
    system.LinuxStrategy().notify("Git Convoy", "hello")


def test_macos_notify_sanitizes_quotes(mocker: MagicMock) -> None:
    mock_run = mocker.patch("subprocess.run")

    system.MacOSStrategy().notify("Git Convoy", 'Push failed: "main" rejected')

    script = mock_run.call_args[0][0][2]
    assert "'main'" in script
    assert script.count('"') == 4


def test_desktop_sink_uses_strategy() -> None:
    strategy = MagicMock(spec=system.SystemStrategy)

    DesktopSink(strategy).notify("Starting pull for notes", 4.0)

    strategy.notify.assert_called_once_with(
        "Git Convoy", "Starting pull for notes", 4.0
    )


def test_console_reporter_escapes_markup() -> None:
    """Verifies git output with brackets is printed literally."""
    console = Console(record=True, width=200)
    reporter = ConsoleReporter(console)

    reporter(
        SyncEvent(
            "t1",
            "notes",
            OperationKind.PUSH,
            EventPhase.FAILED,
            "git push failed: ! [rejected] main -> main (fetch first)",
        )
    )

    text = console.export_text()
    assert text.startswith("ERROR: Commit & push failed for notes")
    assert "[rejected]" in text
