#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Device operations behind the HTTP routes.

Each function builds an adb argument vector, runs it through the runner and
shapes the JSON payload. They return ``(status, payload)`` so routes stay
one-liners; request validation errors raise ``BadRequest``.
"""

import os
import re
import shutil
import tempfile
import zipfile

from .errors import BadRequest
from .utils import log
from .utils.parsers import (
    parse_device_list,
    parse_ipv4_addresses,
    parse_package_details,
    parse_package_list,
    parse_package_paths,
)

PACKAGE_TYPES = ("user", "system", "all")


def _fail(r, *, with_stdout: bool = True) -> tuple[int, dict]:
    body = {"ok": False, "error": r.error, "stderr": r.stderr}
    if with_stdout:
        body["stdout"] = r.stdout
    return 500, body


def _require(**params):
    missing = [k for k, v in params.items() if not v or not isinstance(v, str)]
    if missing:
        raise BadRequest(f"{' and '.join(missing)} required")


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def safe_filename(pkg: str) -> str:
    return re.sub(r"[^\w.\-+]", "_", pkg or "") or "app"


# ──────── server / devices ────────
def adb_version(runner) -> tuple[int, dict]:
    r = runner.run(["version"])
    if not r.ok:
        return _fail(r, with_stdout=False)
    return 200, {"ok": True, "version": r.stdout.strip()}


def list_devices(runner) -> tuple[int, dict]:
    r = runner.run(["devices", "-l"])
    if not r.ok:
        return _fail(r, with_stdout=False)
    return 200, {"ok": True, "devices": [d.to_dict() for d in parse_device_list(r.stdout)]}


def device_ips(runner, serial: str) -> tuple[int, dict]:
    _require(serial=serial)
    r = runner.run(["-s", serial, "shell", "ip", "-o", "addr", "show", "up", "scope", "global"])
    if not r.ok:
        return _fail(r, with_stdout=False)
    return 200, {"ok": True, "stdout": r.stdout, "ipv4": parse_ipv4_addresses(r.stdout)}


def enable_tcpip(runner, serial: str, port=None) -> tuple[int, dict]:
    _require(serial=serial)
    try:
        p = int(port) if port not in (None, "") else 5555
    except (TypeError, ValueError):
        p = 5555
    if p == 0:
        p = 5555
    if p < 1024 or p > 65535:
        raise BadRequest("invalid port")
    r = runner.run(["-s", serial, "tcpip", str(p)])
    if not r.ok:
        return _fail(r, with_stdout=False)
    return 200, {"ok": True, "stdout": r.stdout}


def kill_server(runner) -> tuple[int, dict]:
    r = runner.run(["kill-server"])
    return 200, {"ok": r.ok, "stdout": r.stdout, "stderr": r.stderr, "error": r.error}


def start_server(runner) -> tuple[int, dict]:
    r = runner.run(["start-server"])
    return 200, {"ok": r.ok, "stdout": r.stdout, "stderr": r.stderr, "error": r.error}


# ──────── files / shell ────────
def push_file(runner, serial: str, local_path: str, remote: str) -> tuple[int, dict]:
    """Push ``local_path`` to ``remote``. The caller owns and removes the file."""
    r = runner.run(["-s", serial, "push", local_path, remote],
                   timeout=runner.config.install_timeout)
    if not r.ok:
        return _fail(r, with_stdout=False)
    log(f"push {serial} → {remote}")
    return 200, {"ok": True, "stdout": r.stdout}


def install_apk(runner, serial: str, apk_path: str, *, reinstall=False,
                grant=False, downgrade=False) -> tuple[int, dict]:
    args = ["-s", serial, "install"]
    if _flag(reinstall):
        args.append("-r")
    if _flag(grant):
        args.append("-g")
    if _flag(downgrade):
        args.append("-d")
    args.append(apk_path)
    r = runner.run(args, timeout=runner.config.install_timeout)
    if not r.ok:
        return _fail(r)
    log(f"install {serial} ok")
    return 200, {"ok": True, "stdout": r.stdout}


def shell_timeout(config, timeout_ms) -> float:
    """Seconds to allow a shell command: ``timeoutMs`` or the default, capped."""
    try:
        secs = float(timeout_ms) / 1000.0 if timeout_ms else 0.0
    except (TypeError, ValueError):
        secs = 0.0
    if secs <= 0:
        secs = config.shell_timeout
    return min(secs, config.shell_timeout_max)


def run_shell(runner, serial: str, cmd, timeout_ms=None) -> tuple[int, dict]:
    _require(serial=serial)
    if not cmd or not isinstance(cmd, str):
        raise BadRequest("cmd required")
    r = runner.run(["-s", serial, "shell", cmd], timeout=shell_timeout(runner.config, timeout_ms))
    if not r.ok:
        return _fail(r)
    return 200, {"ok": True, "stdout": r.stdout, "stderr": r.stderr}


# ──────── packages ────────
def list_packages(runner, serial: str, kind: str = "user") -> tuple[int, dict]:
    _require(serial=serial)
    kind = (kind or "user").lower()
    args = ["-s", serial, "shell", "pm", "list", "packages"]
    if kind == "user":
        args.append("-3")
    elif kind == "system":
        args.append("-s")
    r = runner.run(args)
    if not r.ok:
        return _fail(r, with_stdout=False)
    return 200, {"ok": True, "packages": [p.to_dict() for p in parse_package_list(r.stdout)]}


def package_details(runner, serial: str, pkg: str) -> tuple[int, dict]:
    _require(serial=serial, pkg=pkg)
    r = runner.run(["-s", serial, "shell", "dumpsys", "package", pkg])
    if not r.ok:
        return _fail(r)
    return 200, {"ok": True, "pkg": pkg, "details": parse_package_details(r.stdout).to_dict()}


def uninstall_package(runner, serial: str, pkg: str, user0only=False) -> tuple[int, dict]:
    _require(serial=serial, pkg=pkg)
    if _flag(user0only):
        args = ["-s", serial, "shell", "pm", "uninstall", "--user", "0", pkg]
    else:
        args = ["-s", serial, "uninstall", pkg]
    return _package_action(runner, args, f"uninstall {pkg}")


def disable_package(runner, serial: str, pkg: str) -> tuple[int, dict]:
    _require(serial=serial, pkg=pkg)
    return _package_action(runner, ["-s", serial, "shell", "pm", "disable-user", "--user", "0", pkg],
                           f"disable {pkg}")


def enable_package(runner, serial: str, pkg: str) -> tuple[int, dict]:
    _require(serial=serial, pkg=pkg)
    return _package_action(runner, ["-s", serial, "shell", "pm", "enable", pkg], f"enable {pkg}")


def grant_permission(runner, serial: str, pkg: str, permission: str) -> tuple[int, dict]:
    _require(serial=serial, pkg=pkg, permission=permission)
    return _package_action(runner, ["-s", serial, "shell", "pm", "grant", pkg, permission],
                           f"grant {pkg} {permission}")


def revoke_permission(runner, serial: str, pkg: str, permission: str) -> tuple[int, dict]:
    _require(serial=serial, pkg=pkg, permission=permission)
    return _package_action(runner, ["-s", serial, "shell", "pm", "revoke", pkg, permission],
                           f"revoke {pkg} {permission}")


def _package_action(runner, args: list[str], what: str) -> tuple[int, dict]:
    r = runner.run(args)
    if not r.ok:
        return _fail(r)
    log(what)
    return 200, {"ok": True, "stdout": r.stdout}


# ──────── apk download ────────
def apk_paths(runner, serial: str, pkg: str):
    """Return ``(error_response, base_path, paths)`` for ``pm path <pkg>``."""
    _require(serial=serial, pkg=pkg)
    r = runner.run(["-s", serial, "shell", "pm", "path", pkg])
    if not r.ok:
        return _fail(r), None, []
    base, paths = parse_package_paths(r.stdout)
    if not paths:
        return (404, {"ok": False, "error": "paths not found"}), None, []
    return None, base, paths


def split_name(remote_path: str) -> str:
    if remote_path.endswith("/base.apk"):
        return "base.apk"
    return "split_" + remote_path.rsplit("/", 1)[-1]


def pull_apks_zip(runner, serial: str, paths: list[str], workdir: str) -> str | None:
    """
    Pull every APK in ``paths`` into ``workdir`` and zip them.

    Splits that fail to pull are skipped. Returns the zip path, or None when
    nothing could be pulled.
    """
    pulled = []
    for pth in paths:
        name = split_name(pth)
        dest = os.path.join(workdir, name)
        r = runner.run(["-s", serial, "pull", pth, dest], timeout=runner.config.install_timeout)
        if r.ok and os.path.exists(dest):
            pulled.append((dest, name))
        else:
            log(f"pull {pth} skipped: {r.error or 'missing'}")
    if not pulled:
        return None
    archive = os.path.join(workdir, "apks.zip")
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        for dest, name in pulled:
            zf.write(dest, arcname=name)
    return archive


def make_workdir(config, prefix: str = "apk-pull-") -> str:
    return tempfile.mkdtemp(prefix=prefix, dir=config.upload_dir)


def remove_workdir(path: str) -> None:
    shutil.rmtree(path, ignore_errors=True)
