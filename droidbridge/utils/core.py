#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core utilities for DroidBridge.

Configuration is read once at startup into an immutable ``Config`` and passed
explicitly to the runner and the Flask app factory. The activity log is a
small ring buffer that the web UI mirrors over Socket.IO.

ADB server selection:
  1) ADB_SERVER_SOCKET=tcp:<host>:<port>  → every command gets ``-H``/``-P``
  2) otherwise the local adb server (default port 5037)
"""

import os
import tempfile
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from dotenv import load_dotenv

# ───────────── config ─────────────
DEFAULT_ADB_PATH = "adb"
DEFAULT_PORT = 8080
LOG_LIMIT = 200


def _env_float(environ, key: str, default: float) -> float:
    raw = (environ.get(key) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(environ, key: str, default: int) -> int:
    raw = (environ.get(key) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Config:
    """Runtime settings. Timeouts are in seconds."""
    adb_path: str = DEFAULT_ADB_PATH
    adb_server_socket: str | None = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    command_timeout: float = 60.0
    shell_timeout: float = 30.0
    shell_timeout_max: float = 300.0
    install_timeout: float = 600.0
    log_grace_period: float = 2.0
    upload_limit: int = 1024 * 1024 * 1024
    upload_dir: str = field(default_factory=tempfile.gettempdir)

    @classmethod
    def from_env(cls, environ=None, *, dotenv: bool = True) -> "Config":
        """Build a Config from ``environ`` (``os.environ`` by default).

        A ``.env`` file in the working directory is loaded first unless
        ``dotenv`` is False; variables already set in the process win.
        """
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ
        adb_path = (environ.get("ADB_PATH") or "").strip() or DEFAULT_ADB_PATH
        return cls(
            adb_path=adb_path,
            adb_server_socket=(environ.get("ADB_SERVER_SOCKET") or "").strip() or None,
            host=(environ.get("HOST") or "").strip() or "0.0.0.0",
            port=_env_int(environ, "PORT", DEFAULT_PORT),
            command_timeout=_env_float(environ, "ADB_TIMEOUT", 60.0),
            shell_timeout=_env_float(environ, "SHELL_TIMEOUT", 30.0),
            shell_timeout_max=_env_float(environ, "SHELL_TIMEOUT_MAX", 300.0),
            install_timeout=_env_float(environ, "INSTALL_TIMEOUT", 600.0),
            log_grace_period=_env_float(environ, "LOGCAT_GRACE", 2.0),
            upload_limit=_env_int(environ, "UPLOAD_LIMIT", 1024 * 1024 * 1024),
            upload_dir=(environ.get("UPLOAD_DIR") or "").strip() or tempfile.gettempdir(),
        )

    def server_address(self) -> tuple[str | None, str | None]:
        """Return (host, port) parsed from ``ADB_SERVER_SOCKET``, if any."""
        sock = self.adb_server_socket
        if not sock or not sock.startswith("tcp:"):
            return None, None
        hostport = sock[4:]
        if ":" in hostport:
            host, port = hostport.split(":", 1)
        else:
            host, port = None, hostport
        return host or None, port or None


def adb_cmd(config: Config, extra: list[str]) -> list[str]:
    """
    Construct an ``adb`` command line honoring the remote server settings.

    Parameters
    ----------
    config:
        Active configuration; supplies the binary and ``ADB_SERVER_SOCKET``.
    extra:
        Arguments appended after the server flags, e.g. ``["-s", serial,
        "shell", "id"]``.
    """
    base = [config.adb_path]
    host, port = config.server_address()
    if host:
        base += ["-H", host]
    if port:
        base += ["-P", port]
    return base + list(extra)


# ─────────── runtime state ───────────
prog_log = deque(maxlen=LOG_LIMIT)   # activity log lines
cmd_log = deque(maxlen=LOG_LIMIT)    # adb invocations
_listeners = []


# ────────────── misc helpers ──────────────
def ts_now() -> str:
    """Return current UTC time as HH:MM:SS string."""
    return datetime.now(timezone.utc).strftime("%H:%M:%S")


def log(msg: str, dest: str = "prog"):
    """Append a timestamped message to prog_log or cmd_log and notify listeners."""
    line = f"{ts_now()} {msg}"
    tgt = prog_log if dest == "prog" else cmd_log
    tgt.append(line)
    for fn in list(_listeners):
        fn(line, dest)


def add_log_listener(fn):
    """Register ``fn(line, dest)`` to be called for every logged line."""
    if fn not in _listeners:
        _listeners.append(fn)


def remove_log_listener(fn):
    if fn in _listeners:
        _listeners.remove(fn)
