import logging
import sys
from logging.handlers import RotatingFileHandler

from rich.console import Console

from .config import Config
from .constants import APP_NAME, LOG_FILE
from .notify import DesktopSink, NotificationSink
from .orchestrator import Orchestrator
from .sync import SyncOutcome
from .targets import SettingsError, TargetStore

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

err_console = Console(stderr=True)


def setup_logging(interactive: bool, config: Config | None = None) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to file/stderr
                            with rotation enabled.
        config (Config | None, optional): Supplies the log rotation size.
    """
    config = config or Config()
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Reconfiguring replaces earlier handlers instead of duplicating output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Always log to stderr (captured by systemd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    if interactive:
        # The console reporter already shows per-target progress.
        stream_handler.setLevel(logging.WARNING)
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=config.limits.max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def summarize(outcomes: list[SyncOutcome]) -> tuple[int, int]:
    """Counts succeeded and failed outcomes.

    Returns:
        tuple[int, int]: (succeeded, failed).
    """
    succeeded = sum(1 for o in outcomes if o.succeeded)
    return succeeded, len(outcomes) - succeeded


def main(interactive: bool = False) -> int:
    """Runs one unattended pass: push every push-enabled target, then pull.

    This is the entry point of the periodic service.

    Args:
        interactive (bool, optional): Whether output goes to a terminal.
                                      Defaults to False.

    Returns:
        int: 0 when every outcome succeeded, 1 otherwise.
    """
    config = Config.load()
    setup_logging(interactive, config)

    try:
        store = TargetStore.open()
    except SettingsError as e:
        logger.critical(f"CRITICAL: {e}")
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        return 1

    if not len(store):
        logger.info("No targets configured. Nothing to do.")
        return 0

    sinks: list[NotificationSink] = []
    if config.notify.desktop:
        sinks.append(DesktopSink())

    orchestrator = Orchestrator.from_config(config, store, sinks=sinks)
    try:
        outcomes = orchestrator.sync_all()
    except SettingsError as e:
        logger.critical(f"CRITICAL: {e}")
        return 1

    succeeded, failed = summarize(outcomes)
    logger.info(f"DONE: {succeeded} succeeded, {failed} failed.")
    return 1 if failed else 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
