"""Test doubles: a scripted command runner that never spawns processes."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from git_convoy.runner import CommandOutput, CommandRunner


@dataclass
class Call:
    args: tuple[str, ...]
    cwd: str
    env: Mapping[str, str] | None

    @property
    def verb(self) -> str:
        """The git verb, skipping the binary and any `-c key=value` options."""
        args = list(self.args[1:])
        while args and args[0] == "-c":
            args = args[2:]
        return args[0] if args else ""


class FakeRunner(CommandRunner):
    """Records every call and answers from a per-verb script.

    `responses` maps a git verb (e.g. "push") or a working directory to either
    a stdout string, an exception instance to raise, or a callable taking the
    `Call` and returning one of those.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[Call] = []
        self.responses: dict[str, object] = {}

    def run(
        self,
        args: Sequence[str],
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
    ) -> CommandOutput:
        call = Call(tuple(args), str(cwd), env)
        self.calls.append(call)

        response = self.responses.get(call.verb, self.responses.get(str(cwd), ""))
        if callable(response) and not isinstance(response, BaseException):
            response = response(call)
        if isinstance(response, BaseException):
            raise response
        return CommandOutput(call.args, 0, str(response or ""), "")

    def verbs(self, cwd: str | None = None) -> list[str]:
        return [c.verb for c in self.calls if cwd is None or c.cwd == cwd]

    def cwds(self) -> list[str]:
        return list(dict.fromkeys(c.cwd for c in self.calls))

