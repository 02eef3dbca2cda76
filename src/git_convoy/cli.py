import argparse
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.table import Table

from . import daemon, service
from .config import Config
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE, TARGETS_FILE
from .notify import ConsoleReporter, DesktopSink, NotificationSink
from .orchestrator import Orchestrator
from .sync import MergeStrategy, OperationKind, SyncOutcome
from .targets import RepositoryTarget, SettingsError, TargetStore, UnknownTargetError

console = Console()


def _open_store() -> TargetStore:
    """Loads the target collection, exiting with an error panel on failure."""
    try:
        return TargetStore.open(TARGETS_FILE)
    except SettingsError as e:
        console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)


def _build_orchestrator(store: TargetStore, config: Config) -> Orchestrator:
    sinks: list[NotificationSink] = []
    if config.notify.desktop:
        sinks.append(DesktopSink())
    return Orchestrator.from_config(
        config, store, sinks=sinks, on_event=ConsoleReporter(console)
    )


def _print_outcomes(store: TargetStore, outcomes: list[SyncOutcome]) -> None:
    """Renders a per-target summary table of a run."""
    if not outcomes:
        console.print("[dim]No enabled targets for this operation.[/dim]")
        return

    labels = {t.id: t.label for t in store.targets()}
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Target", style="cyan")
    table.add_column("Operation")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for outcome in outcomes:
        if outcome.succeeded:
            status = "[green]Succeeded[/green]"
        else:
            status = "[bold red]Failed[/bold red]"
        label = labels.get(outcome.target_id, outcome.target_id)
        table.add_row(
            f"{escape(label)} [dim]({outcome.target_id})[/dim]",
            outcome.kind.value,
            status,
            escape(outcome.detail),
        )

    console.print(table)


def _exit_for(outcomes: list[SyncOutcome]) -> None:
    if any(not o.succeeded for o in outcomes):
        sys.exit(1)


def run_operation(kind: OperationKind, target_id: str | None = None) -> None:
    """Runs a push or pull over all enabled targets, or over a single target.

    Args:
        kind (OperationKind): PUSH or PULL.
        target_id (str | None, optional): Restrict the run to one target. The
                                          target's enable flags are ignored.
    """
    config = Config.load()
    store = _open_store()
    orchestrator = _build_orchestrator(store, config)

    try:
        if target_id:
            outcomes = [orchestrator.run_one(target_id, kind)]
        else:
            outcomes = orchestrator.run_all(kind)
    except (UnknownTargetError, SettingsError) as e:
        console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)

    _print_outcomes(store, outcomes)
    _exit_for(outcomes)


def sync_everything() -> None:
    """Pushes every push-enabled target, then pulls every pull-enabled target."""
    config = Config.load()
    store = _open_store()
    orchestrator = _build_orchestrator(store, config)
    try:
        outcomes = orchestrator.sync_all()
    except SettingsError as e:
        console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)

    _print_outcomes(store, outcomes)
    _exit_for(outcomes)


def set_strategy(target_id: str, strategy: MergeStrategy) -> None:
    """Sets a target's pull reconciliation strategy."""
    config = Config.load()
    store = _open_store()
    orchestrator = _build_orchestrator(store, config)
    try:
        outcome = orchestrator.set_merge_strategy(target_id, strategy)
    except UnknownTargetError as e:
        console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)
    _exit_for([outcome])


def add_target(args: argparse.Namespace) -> None:
    """Creates a new target from command-line values, prompting for the rest."""
    store = _open_store()

    link = args.link
    if link is None:
        link = Prompt.ask("Repository link")
    username = args.username
    if username is None:
        username = Prompt.ask("Username")
    token = args.token
    if token is None:
        token = Prompt.ask(
            "Access token", password=True, default="", show_default=False
        )
    path = args.path
    if path is None:
        path = Prompt.ask("Local path", default=str(Path.cwd()))

    try:
        target = store.add(
            remote_link=link,
            username=username,
            access_token=token,
            local_path=path,
            push_enabled=not args.no_push,
            pull_enabled=not args.no_pull,
        )
    except SettingsError as e:
        console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)

    console.print(
        f"[bold green]SUCCESS:[/bold green] Added target [cyan]{target.id}[/cyan] "
        f"({escape(target.label)})."
    )


def edit_target(args: argparse.Namespace) -> None:
    """Changes the given fields of an existing target."""
    store = _open_store()
    updates = {}
    if args.link is not None:
        updates["remote_link"] = args.link
    if args.username is not None:
        updates["username"] = args.username
    if args.path is not None:
        updates["local_path"] = args.path
    if args.token is not None:
        updates["access_token"] = args.token
    elif args.prompt_token:
        updates["access_token"] = Prompt.ask(
            "Access token", password=True, default="", show_default=False
        )

    if not updates:
        console.print("[yellow]Nothing to change.[/yellow]")
        return

    _update(store, args.id, **updates)
    console.print(
        f"[bold green]SUCCESS:[/bold green] Updated target [cyan]{args.id}[/cyan]."
    )


def set_enabled(target_id: str, enabled: bool, push: bool, pull: bool) -> None:
    """Toggles a target's push and/or pull flags (both when neither is chosen)."""
    store = _open_store()
    if not push and not pull:
        push = pull = True

    updates = {}
    if push:
        updates["push_enabled"] = enabled
    if pull:
        updates["pull_enabled"] = enabled

    target = _update(store, target_id, **updates)
    console.print(
        f"Target [cyan]{target.id}[/cyan]: push "
        f"{'on' if target.push_enabled else 'off'}, pull "
        f"{'on' if target.pull_enabled else 'off'}."
    )


def remove_target(target_id: str, assume_yes: bool = False) -> None:
    """Deletes a target after confirmation."""
    store = _open_store()
    try:
        target = store.get(target_id)
    except UnknownTargetError as e:
        console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)

    if not assume_yes and not Confirm.ask(
        f"Stop syncing [cyan]{escape(target.label)}[/cyan] ({target.id})?",
        default=False,
    ):
        console.print("[bold red]ABORTED.[/bold red]")
        return

    try:
        store.remove(target_id)
    except SettingsError as e:
        console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)
    console.print(f"✔ Removed: [cyan]{escape(target.label)}[/cyan]", style="green")


def _update(store: TargetStore, target_id: str, **updates: object) -> RepositoryTarget:
    try:
        return store.update(target_id, **updates)
    except (UnknownTargetError, SettingsError) as e:
        console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)


def list_targets() -> None:
    """Lists all configured targets and their flags. Tokens are never shown."""
    store = _open_store()
    targets = store.targets()
    if not targets:
        console.print("[yellow]No targets configured. Run 'git-convoy add'.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Remote")
    table.add_column("Local Path")
    table.add_column("User", style="dim")
    table.add_column("Token", style="dim")
    table.add_column("Push", justify="center")
    table.add_column("Pull", justify="center")

    for t in targets:
        display_path = t.local_path.replace(str(Path.home()), "~") or "-"
        path_cell = escape(display_path)
        if t.local_path and not Path(t.local_path).expanduser().exists():
            path_cell = f"[red]{path_cell} (missing)[/red]"
        table.add_row(
            t.id,
            escape(t.remote_link or "-"),
            path_cell,
            escape(t.username or "-"),
            "set" if t.access_token else "-",
            "[green]on[/green]" if t.push_enabled else "[yellow]off[/yellow]",
            "[green]on[/green]" if t.pull_enabled else "[yellow]off[/yellow]",
        )

    console.print(table)


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# Git Convoy Configuration\n\n"
                "[core]\n"
                '# command_timeout = "2m"\n'
                '# credential_mode = "helper"\n'
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        if sys.platform == "darwin":
            editor = "open"
        else:
            editor = "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Prints every configuration option with its default and description."""
    table = Table(show_header=True, header_style="bold magenta", title="config.toml")
    table.add_column("Section", style="cyan")
    table.add_column("Key", style="bold")
    table.add_column("Type")
    table.add_column("Default", style="green")
    table.add_column("Description")

    table.add_row("core", "git_binary", "str", '"git"', "The git executable to run.")
    table.add_row(
        "",
        "command_timeout",
        "int | str",
        '"2m"',
        "Kill a git process after this long (e.g., '90s', '5m', 0 = never).",
    )
    table.add_row(
        "",
        "credential_mode",
        "str",
        '"helper"',
        "'helper' passes credentials via environment; 'url' embeds them in the URL.",
    )
    table.add_row(
        "",
        "stderr_is_failure",
        "bool",
        "true",
        "Treat any error output from a successful git command as a failure.",
    )
    table.add_row(
        "run", "max_workers", "int", "1", "Repositories synced in parallel."
    )
    table.add_row(
        "", "interval", "int | str", '"15m"', "Default interval for install-service."
    )
    table.add_row(
        "notify",
        "success_duration",
        "float",
        "4",
        "Seconds a progress notice stays up.",
    )
    table.add_row(
        "", "failure_duration", "float", "5", "Seconds a failure notice stays up."
    )
    table.add_row("", "desktop", "bool", "false", "Also send desktop notifications.")
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)


def tail_log() -> None:
    """Follows the log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Keep many git repositories pushed and pulled.",
    )
    subparsers = parser.add_subparsers(dest="command")

    push_parser = subparsers.add_parser(
        "push", help="Commit & push all push-enabled targets"
    )
    push_parser.add_argument("--target", "-t", help="Only this target id")
    pull_parser = subparsers.add_parser("pull", help="Pull all pull-enabled targets")
    pull_parser.add_argument("--target", "-t", help="Only this target id")
    subparsers.add_parser("sync", help="Push, then pull, every enabled target")

    strategy_parser = subparsers.add_parser(
        "strategy", help="Set a target's pull strategy (merge or rebase)"
    )
    strategy_parser.add_argument("id", help="Target id")
    strategy_parser.add_argument(
        "strategy", choices=[s.value for s in MergeStrategy], help="Pull strategy"
    )

    add_parser = subparsers.add_parser("add", help="Add a repository target")
    add_parser.add_argument("--link", help="Remote host and path (github.com/u/repo)")
    add_parser.add_argument("--username", help="Account name")
    add_parser.add_argument("--token", help="Access token (prompted if omitted)")
    add_parser.add_argument("--path", help="Local working copy path")
    add_parser.add_argument(
        "--no-push", action="store_true", help="Exclude from push runs"
    )
    add_parser.add_argument(
        "--no-pull", action="store_true", help="Exclude from pull runs"
    )

    edit_parser = subparsers.add_parser("edit", help="Change a repository target")
    edit_parser.add_argument("id", help="Target id")
    edit_parser.add_argument("--link", help="Remote host and path")
    edit_parser.add_argument("--username", help="Account name")
    edit_parser.add_argument("--token", help="Access token")
    edit_parser.add_argument(
        "--prompt-token", action="store_true", help="Prompt for a new access token"
    )
    edit_parser.add_argument("--path", help="Local working copy path")

    remove_parser = subparsers.add_parser("remove", help="Remove a repository target")
    remove_parser.add_argument("id", help="Target id")
    remove_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask")

    for name, help_text in (("enable", "Enable"), ("disable", "Disable")):
        toggle = subparsers.add_parser(
            name, help=f"{help_text} push and/or pull for a target"
        )
        toggle.add_argument("id", help="Target id")
        toggle.add_argument("--push", action="store_true", help="Only the push flag")
        toggle.add_argument("--pull", action="store_true", help="Only the pull flag")

    subparsers.add_parser("list", help="List configured targets")
    subparsers.add_parser("log", help="Tail the log file")

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    install_parser = subparsers.add_parser(
        "install-service", help="Install the periodic sync timer"
    )
    install_parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Sync interval in seconds (default: [run] interval)",
    )
    subparsers.add_parser("uninstall-service", help="Uninstall the periodic sync timer")
    subparsers.add_parser("help", help="Show this help message")

    return parser


def main() -> None:
    """Main entry point for the Git Convoy CLI."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command in ("push", "pull", "sync", "strategy"):
        daemon.setup_logging(interactive=True, config=Config.load())

    if args.command == "push":
        run_operation(OperationKind.PUSH, args.target)
    elif args.command == "pull":
        run_operation(OperationKind.PULL, args.target)
    elif args.command == "sync":
        sync_everything()
    elif args.command == "strategy":
        set_strategy(args.id, MergeStrategy(args.strategy))
    elif args.command == "add":
        add_target(args)
    elif args.command == "edit":
        edit_target(args)
    elif args.command == "remove":
        remove_target(args.id, args.yes)
    elif args.command in ("enable", "disable"):
        set_enabled(args.id, args.command == "enable", args.push, args.pull)
    elif args.command == "list":
        list_targets()
    elif args.command == "log":
        tail_log()
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config()
    elif args.command == "install-service":
        interval = args.interval or Config.load().run.interval
        with console.status("Installing background service...", spinner="dots"):
            service.install(interval=interval)
    elif args.command == "uninstall-service":
        with console.status("Uninstalling service...", spinner="dots"):
            service.uninstall()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
