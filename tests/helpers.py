from __future__ import annotations

from typing import Callable

from droidbridge.runner import CommandResult
from droidbridge.utils import Config


class FakeRunner:
    """Stands in for AdbRunner: records argument vectors, replies from a queue or a callable."""

    def __init__(self, config: Config, respond: Callable[[list[str]], CommandResult] | None = None):
        self.config = config
        self.respond = respond
        self.queue: list[CommandResult] = []
        self.calls: list[tuple[list[str], float | None]] = []

    def reply(self, *results: CommandResult) -> "FakeRunner":
        self.queue.extend(results)
        return self

    def run(self, args, timeout=None, cwd=None) -> CommandResult:
        self.calls.append((list(args), timeout))
        if self.respond is not None:
            return self.respond(list(args))
        if self.queue:
            return self.queue.pop(0)
        return CommandResult(ok=True, exit_code=0)

    @property
    def last_args(self) -> list[str]:
        return self.calls[-1][0]


def ok(stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(ok=True, stdout=stdout, stderr=stderr, exit_code=0)


def failed(error: str = "Command failed with exit code 1: adb", stderr: str = "error: device offline",
           stdout: str = "") -> CommandResult:
    return CommandResult(ok=False, stdout=stdout, stderr=stderr, exit_code=1, error=error)
