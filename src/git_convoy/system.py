import logging
import subprocess
import sys

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class SystemStrategy:
    """Base class defining the interface for system-level interactions."""

    def notify(self, title: str, message: str, duration: float | None = None) -> None:
        """Sends a desktop notification.

        Args:
            title (str): The notification title.
            message (str): The notification body text.
            duration (float | None, optional): Seconds to keep it visible, where
                                               the platform supports it.
        """
        pass


class MacOSStrategy(SystemStrategy):
    """System strategy implementation for macOS."""

    def notify(self, title: str, message: str, duration: float | None = None) -> None:
        """Sends a notification using AppleScript."""
        # Sanitize quotes to prevent AppleScript syntax errors.
        clean_msg = message.replace('"', "'")
        clean_title = title.replace('"', "'")
        script = f'display notification "{clean_msg}" with title "{clean_title}"'
        try:
            subprocess.run(["osascript", "-e", script], stderr=subprocess.DEVNULL)
        except OSError as e:
            logger.debug(f"osascript notification failed: {e}")


class LinuxStrategy(SystemStrategy):
    """System strategy implementation for Linux."""

    def notify(self, title: str, message: str, duration: float | None = None) -> None:
        """Sends a notification using `notify-send`."""
        cmd = ["notify-send"]
        if duration:
            cmd.extend(["-t", str(int(duration * 1000))])
        cmd.extend([title, message])
        try:
            subprocess.run(cmd, stderr=subprocess.DEVNULL)
        except FileNotFoundError:
            logger.debug("notify-send not available; desktop notification skipped.")


def get_system() -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Returns:
        SystemStrategy: An instance of MacOSStrategy, LinuxStrategy, or the base
        SystemStrategy depending on the operating system.
    """
    if sys.platform == "darwin":
        return MacOSStrategy()
    elif sys.platform.startswith("linux"):
        return LinuxStrategy()
    else:
        return SystemStrategy()
