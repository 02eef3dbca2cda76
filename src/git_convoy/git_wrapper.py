from collections.abc import Sequence
from pathlib import Path

from .runner import CommandOutput, CommandRunner


class GitRepo:
    """A wrapper around the Git command-line interface for one working copy.

    This class turns git verbs into argument vectors and hands them to a
    `CommandRunner`. It does not validate the path itself: a missing or
    invalid working copy is reported by git (or by the runner) when a command
    executes.

    Attributes:
        path (Path): The file system path to the working copy.
        runner (CommandRunner): Executes the git processes.
        git_binary (str): The git executable.
        remote_env (dict[str, str] | None): Environment for commands that talk to
                                            the remote. Local commands inherit.
        remote_args (list[str]): Global options added to commands that talk
                                 to the remote (e.g. credential helper config).
    """

    def __init__(
        self,
        path: Path | str,
        runner: CommandRunner,
        git_binary: str = "git",
        remote_env: dict[str, str] | None = None,
        remote_args: Sequence[str] = (),
    ):
        """Initializes the GitRepo instance.

        Args:
            path (Path | str): The path to the working copy.
            runner (CommandRunner): The command runner to execute git with.
            git_binary (str, optional): The git executable. Defaults to "git".
            remote_env (dict[str, str] | None, optional): Environment for push and
                                                          pull commands.
            remote_args (Sequence[str], optional): Options placed before the verb of
                                                   push and pull commands.
        """
        self.path = Path(path).expanduser()
        self.runner = runner
        self.git_binary = git_binary
        self.remote_env = remote_env
        self.remote_args = list(remote_args)

    def _run(self, args: list[str], remote: bool = False) -> CommandOutput:
        """Executes a Git command within the working copy.

        Args:
            args (list[str]): Arguments to pass to git, verb first.
            remote (bool, optional): Whether the command contacts the remote.
                                     Defaults to False.

        Returns:
            CommandOutput: The captured output.

        Raises:
            CommandError: If the git process fails in any way.
        """
        prefix = self.remote_args if remote else []
        env = self.remote_env if remote else None
        cmd = [self.git_binary, *prefix, *args]
        return self.runner.run(cmd, cwd=self.path, env=env)

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "."])

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the working copy.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        output = self._run(["status", "--porcelain"]).stdout
        return [line for line in output.splitlines() if line.strip()]

    def has_staged_changes(self) -> bool:
        """Whether the index differs from HEAD.

        Returns:
            bool: True if at least one path is staged for commit.
        """
        # Column one of porcelain v1 is the index state; ' ' and '?' mean unstaged.
        return any(line[:1] not in (" ", "?") for line in self.status_porcelain())

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
        """
        self._run(["commit", "-m", message])

    def push(self, url: str) -> None:
        """Pushes the current branch to a remote URL.

        Args:
            url (str): The remote URL.
        """
        self._run(["push", "--quiet", url], remote=True)

    def pull(self, url: str) -> None:
        """Fetches from a remote URL and integrates into the current branch.

        Args:
            url (str): The remote URL.
        """
        self._run(["pull", "--quiet", url], remote=True)

    def set_pull_rebase(self, rebase: bool) -> None:
        """Sets the working copy's pull reconciliation strategy.

        This writes to the repository's local configuration only.

        Args:
            rebase (bool): True to rebase on pull, False to merge.
        """
        self._run(["config", "pull.rebase", "true" if rebase else "false"])
