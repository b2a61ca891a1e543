#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Relay ``adb logcat`` to a single subscriber.

A ``LogStream`` owns exactly one adb child. Iterating it spawns the child and
yields ``LogLine`` objects as the two reader threads push them onto a queue;
``close()`` terminates the child (SIGTERM, grace period, then SIGKILL) and is
safe to call any number of times. Nothing is buffered before subscription.
"""

import queue
import subprocess
import threading
from dataclasses import dataclass

from .core import log

IDLE = "idle"
STREAMING = "streaming"
CLOSED = "closed"

STDERR_PREFIX = "[stderr] "

_EOF = object()


@dataclass(frozen=True)
class LogLine:
    text: str
    stream: str = "stdout"


def logcat_args(serial: str, filter: str | None = None) -> list[str]:
    args = ["-s", serial, "logcat", "-v", "time"]
    if filter:
        args += filter.split()
    return args


def sse_event(text: str) -> str:
    """Frame one line as a server-sent ``data:`` event."""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "".join(f"data: {ln}\n" for ln in lines) + "\n"


class LogStream:

    def __init__(self, runner, serial: str, filter: str | None = None,
                 grace_period: float | None = None):
        self.runner = runner
        self.serial = serial
        self.filter = filter
        if grace_period is None:
            grace_period = runner.config.log_grace_period
        self.grace_period = grace_period
        self.state = IDLE
        self._proc: subprocess.Popen | None = None
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._readers: list[threading.Thread] = []

    # ───────────── lifecycle ─────────────
    def start(self) -> None:
        """Spawn logcat. Raises ``OSError`` if adb cannot be launched."""
        with self._lock:
            if self.state != IDLE:
                return
            self._proc = self.runner.spawn(logcat_args(self.serial, self.filter))
            self.state = STREAMING
        log(f"logcat {self.serial} started")
        for pipe, name in ((self._proc.stdout, "stdout"), (self._proc.stderr, "stderr")):
            t = threading.Thread(target=self._reader, args=(pipe, name), daemon=True)
            t.start()
            self._readers.append(t)

    def close(self) -> None:
        with self._lock:
            if self.state == CLOSED:
                return
            was_streaming = self.state == STREAMING
            self.state = CLOSED
            proc = self._proc
        self._queue.put(_EOF)
        if proc is None:
            return
        _terminate(proc, self.grace_period)
        if was_streaming:
            log(f"logcat {self.serial} stopped (rc={proc.returncode})")

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc else None

    # ───────────── readers ─────────────
    def _reader(self, pipe, name: str) -> None:
        try:
            for raw in iter(pipe.readline, b""):
                if self.state == CLOSED:
                    break
                text = raw.decode("utf-8", errors="ignore").rstrip("\r\n")
                if not text:
                    continue
                if name == "stderr":
                    text = STDERR_PREFIX + text
                self._queue.put(LogLine(text=text, stream=name))
        except (OSError, ValueError):
            pass
        finally:
            pipe.close()
            self._queue.put((_EOF, name))

    # ───────────── iteration ─────────────
    def __iter__(self):
        if self.state == IDLE:
            self.start()
        open_pipes = 2
        try:
            while open_pipes and self.state == STREAMING:
                item = self._queue.get()
                if item is _EOF:
                    break
                if isinstance(item, tuple):
                    open_pipes -= 1
                    continue
                if self.state != STREAMING:
                    break
                yield item
        finally:
            self.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def _terminate(proc: subprocess.Popen, grace: float) -> None:
    if proc.poll() is not None:
        return
    try:
        proc.terminate()
        proc.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
    except OSError:
        pass


def open_log_stream(runner, serial: str, filter: str | None = None) -> LogStream:
    """Return an idle LogStream for ``serial``; iterate it to start relaying."""
    return LogStream(runner, serial, filter)
