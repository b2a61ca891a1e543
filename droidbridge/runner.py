#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command runner: one adb subprocess per call.

Failures (adb missing, non-zero exit, timeout) are returned as data in a
``CommandResult``; ``run`` never raises for them so each caller can pick its
own HTTP status.
"""

import shlex
import subprocess
from dataclasses import dataclass

from .utils.core import Config, adb_cmd, log


@dataclass
class CommandResult:
    ok: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    error: str | None = None
    timed_out: bool = False

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "error": self.error,
        }


def _text(data) -> str:
    # TimeoutExpired carries bytes even when text=True was requested
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="ignore")
    return data


def _describe(cmd: list[str]) -> str:
    return " ".join(shlex.quote(c) for c in cmd)


class AdbRunner:
    """Runs the configured adb binary."""

    def __init__(self, config: Config):
        self.config = config

    def command(self, args: list[str]) -> list[str]:
        return adb_cmd(self.config, args)

    def run(self, args: list[str], timeout: float | None = None,
            cwd: str | None = None) -> CommandResult:
        """
        Run ``adb <args>`` to completion.

        ``timeout`` is in seconds and defaults to ``config.command_timeout``;
        when it expires the child is killed and the result reports failure
        with whatever output was captured so far.
        """
        cmd = self.command(args)
        if timeout is None:
            timeout = self.config.command_timeout
        try:
            desc = _describe(cmd)
        except TypeError:
            msg = f"Invalid command arguments: {cmd!r}"
            log(msg)
            return CommandResult(ok=False, error=msg)
        log(desc, dest="cmd")
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="ignore",
                timeout=timeout,
                cwd=cwd,
            )
        except FileNotFoundError:
            msg = f"Command not found: {cmd[0]}"
            log(msg)
            return CommandResult(ok=False, error=msg)
        except PermissionError:
            msg = f"Command not executable: {cmd[0]}"
            log(msg)
            return CommandResult(ok=False, error=msg)
        except subprocess.TimeoutExpired as e:
            msg = f"Command timed out after {timeout:g}s: {desc}"
            log(msg)
            return CommandResult(ok=False, stdout=_text(e.stdout), stderr=_text(e.stderr),
                                 error=msg, timed_out=True)
        except OSError as e:
            msg = f"Command failed to start: {desc} ({e})"
            log(msg)
            return CommandResult(ok=False, error=msg)
        except (TypeError, ValueError) as e:
            msg = f"Invalid command: {desc} ({e})"
            log(msg)
            return CommandResult(ok=False, error=msg)

        if proc.returncode != 0:
            msg = f"Command failed with exit code {proc.returncode}: {desc}"
            log(msg)
            return CommandResult(ok=False, stdout=proc.stdout, stderr=proc.stderr,
                                 exit_code=proc.returncode, error=msg)
        return CommandResult(ok=True, stdout=proc.stdout, stderr=proc.stderr, exit_code=0)

    def spawn(self, args: list[str], *, stderr=subprocess.PIPE) -> subprocess.Popen:
        """Start a long-running adb child with piped binary stdout.

        Raises ``OSError`` when adb cannot be launched.
        """
        cmd = self.command(args)
        log(_describe(cmd), dest="cmd")
        return subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=stderr,
        )
