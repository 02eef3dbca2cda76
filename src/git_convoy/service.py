import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from .constants import APP_LABEL

console = Console()

DAEMON_EXECUTABLE = "git-convoy-daemon"


def get_executable() -> str:
    """Locates the installed daemon executable in the system path.

    Returns:
        str: The absolute path to the 'git-convoy-daemon' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which(DAEMON_EXECUTABLE)
    if not exe:
        console.print(
            f"[bold red]ERROR:[/bold red] Could not find '{DAEMON_EXECUTABLE}'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_dir() -> Path:
    """Returns the systemd user unit directory."""
    return Path.home() / ".config/systemd/user"


def render_units(executable: str, interval: int) -> tuple[str, str]:
    """Builds the systemd service and timer unit files.

    Args:
        executable (str): The path to the daemon executable.
        interval (int): Seconds between runs.

    Returns:
        tuple[str, str]: (service_unit, timer_unit).
    """
    service_content = f"""[Unit]
Description=Git Convoy repository sync

[Service]
Type=oneshot
ExecStart={executable}
"""
    timer_content = f"""[Unit]
Description=Run Git Convoy every {interval} seconds

[Timer]
OnBootSec=5min
OnUnitActiveSec={interval}s
Unit={APP_LABEL}.service

[Install]
WantedBy=timers.target
"""
    return service_content, timer_content


def install_linux(unit_dir: Path, executable: str, interval: int) -> None:
    """Configures and enables a systemd user timer for Linux.

    Creates the .service and .timer unit files in the user's systemd configuration
    directory, reloads the daemon, and enables the timer.

    Args:
        unit_dir (Path): The systemd user unit directory.
        executable (str): The path to the daemon executable.
        interval (int): The sync interval in seconds.
    """
    unit_dir.mkdir(parents=True, exist_ok=True)

    service_content, timer_content = render_units(executable, interval)
    (unit_dir / f"{APP_LABEL}.service").write_text(service_content)
    (unit_dir / f"{APP_LABEL}.timer").write_text(timer_content)

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    subprocess.run(
        ["systemctl", "--user", "enable", "--now", f"{APP_LABEL}.timer"], check=True
    )
    console.print(
        f"[bold green]SUCCESS:[/bold green] Convoy systemd timer active (Linux).\n"
        f"Check status: systemctl --user status {APP_LABEL}.timer"
    )


def install(interval: int = 900) -> None:
    """Installs the periodic sync service.

    On Linux, this generates systemd units. Elsewhere it prints the command to
    schedule with the platform's own scheduler.

    Args:
        interval (int, optional):   The interval between sync runs in seconds.
                                    Defaults to 900.
    """
    if not sys.platform.startswith("linux"):
        console.print(
            "\n[bold yellow]NOTE:[/bold yellow] Automatic service installation "
            "is only supported on Linux (systemd)."
        )
        console.print(
            f"Schedule [green]{DAEMON_EXECUTABLE}[/green] every {interval}s "
            "with launchd, cron or Task Scheduler.\n"
        )
        return

    exe = get_executable()
    console.print(f"Installing background service (interval: {interval}s)...")
    install_linux(get_unit_dir(), exe, interval)


def uninstall() -> None:
    """Removes the periodic sync service.

    On Linux, this disables the systemd units and removes the files.
    """
    if not sys.platform.startswith("linux"):
        console.print(
            "\n[bold yellow]NOTE:[/bold yellow] No managed service on this platform."
        )
        return

    unit_dir = get_unit_dir()
    timer_name = f"{APP_LABEL}.timer"
    subprocess.run(
        ["systemctl", "--user", "disable", "--now", timer_name],
        stderr=subprocess.DEVNULL,
    )

    # Remove .service and .timer files.
    for path in (unit_dir / f"{APP_LABEL}.service", unit_dir / timer_name):
        path.unlink(missing_ok=True)

    subprocess.run(["systemctl", "--user", "daemon-reload"])

    console.print("[bold green]SUCCESS:[/bold green] Service uninstalled.")
