#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Scrapers for adb text output.

Every function here is total: it accepts whatever the tool printed (``str``,
``bytes``, ``None``, truncated dumps) and returns a well-formed result. Missing
fields come back as ``""`` / ``None`` / ``[]``; nothing raises.
"""

import re
from dataclasses import asdict, dataclass, field

DEVICE_STATES = ("device", "offline", "unauthorized", "recovery", "unknown")
_LIST_HEADER = "List of devices attached"

_RE_PACKAGE_LINE = re.compile(r"^package:([\w.]+)(?:=.*)?$")
_RE_VERSION_NAME = re.compile(r"versionName=([\w.\-+]+)")
_RE_VERSION_CODE = re.compile(r"versionCode=(\d+)")
_RE_APP_ID = re.compile(r"appId=(\d+)")
_RE_USER_ID = re.compile(r"userId=(\d+)")
_RE_ENABLED_TRUE = re.compile(r"enabled=true|pkgFlags=\[.*?HAS_CODE.*?\]")
_RE_ENABLED_FALSE = re.compile(r"enabled=false")
# block runs to the first blank line, or to the end of a truncated dump
_RE_REQUESTED = re.compile(r"requested permissions:\s*(.*?)\n\n", re.S)
_RE_GRANTED = re.compile(r"grantedPermissions:\s*(.*?)\n\n", re.S)
_RE_INET = re.compile(r"\binet\s+(\d+\.\d+\.\d+\.\d+)/(\d+)")
_RE_APK_PATH = re.compile(r"^(package|split):(.+)$")


@dataclass
class DeviceRecord:
    """One line of ``adb devices -l``."""
    serial: str
    state: str
    attributes: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"serial": self.serial, "state": self.state,
                "attributes": dict(self.attributes)}


@dataclass
class PackageRecord:
    package_name: str

    def to_dict(self) -> dict:
        return {"package": self.package_name}


@dataclass
class PackageDetails:
    """Fields scraped from ``dumpsys package <pkg>``."""
    versionName: str = ""
    versionCode: str = ""
    appId: str = ""
    userId: str = ""
    enabled: bool | None = None
    requestedPermissions: list[str] = field(default_factory=list)
    grantedPermissions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _as_text(text) -> str:
    if text is None:
        return ""
    if isinstance(text, (bytes, bytearray)):
        return bytes(text).decode("utf-8", errors="ignore")
    if not isinstance(text, str):
        return str(text)
    return text


def _first(rx: re.Pattern, text: str, default: str = "") -> str:
    m = rx.search(text)
    return m.group(1) if m else default


def _block_lines(rx: re.Pattern, text: str) -> list[str]:
    m = rx.search(text)
    if not m:
        return []
    return [s.strip() for s in m.group(1).split("\n") if s.strip()]


# ───────────── devices ─────────────
def parse_device_list(text) -> list[DeviceRecord]:
    """Parse ``adb devices -l`` output into DeviceRecords, in input order.

    Lines lacking a serial or a state are skipped. Tail tokens are split at
    the first ``:``; tokens without one are ignored. States outside
    ``DEVICE_STATES`` are reported as ``unknown``.
    """
    devices = []
    for raw in _as_text(text).splitlines():
        line = raw.strip()
        if not line or line.startswith(_LIST_HEADER):
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        serial, state, rest = parts[0], parts[1], parts[2:]
        attrs = {}
        for tok in rest:
            key, sep, value = tok.partition(":")
            if sep and key and value:
                attrs[key] = value
        if state not in DEVICE_STATES:
            state = "unknown"
        devices.append(DeviceRecord(serial=serial, state=state, attributes=attrs))
    return devices


# ───────────── packages ─────────────
def parse_package_list(text) -> list[PackageRecord]:
    """``pm list packages`` → one record per ``package:<name>`` line."""
    out = []
    for line in _as_text(text).splitlines():
        m = _RE_PACKAGE_LINE.match(line.strip())
        if m:
            out.append(PackageRecord(package_name=m.group(1)))
    return out


def parse_package_details(text) -> PackageDetails:
    text = _as_text(text).replace("\r\n", "\n")
    if _RE_ENABLED_TRUE.search(text):
        enabled = True
    elif _RE_ENABLED_FALSE.search(text):
        enabled = False
    else:
        enabled = None
    # lines flagged granted=true are dropped from the requested list
    requested = [s for s in _block_lines(_RE_REQUESTED, text) if "granted=true" not in s]
    return PackageDetails(
        versionName=_first(_RE_VERSION_NAME, text),
        versionCode=_first(_RE_VERSION_CODE, text),
        appId=_first(_RE_APP_ID, text),
        userId=_first(_RE_USER_ID, text),
        enabled=enabled,
        requestedPermissions=requested,
        grantedPermissions=_block_lines(_RE_GRANTED, text),
    )


def parse_package_paths(text) -> tuple[str | None, list[str]]:
    """``pm path <pkg>`` → (base apk path or None, all apk paths in order)."""
    base, paths = None, []
    for raw in _as_text(text).splitlines():
        m = _RE_APK_PATH.match(raw.strip())
        if not m:
            continue
        kind, pth = m.group(1), m.group(2).strip()
        if not pth:
            continue
        if kind == "package":
            base = pth
        paths.append(pth)
    return base, paths


# ───────────── network ─────────────
def parse_ipv4_addresses(text) -> list[str]:
    """Addresses from ``ip -o addr show`` lines (``inet 192.168.1.5/24``)."""
    return [m.group(1) for m in _RE_INET.finditer(_as_text(text))]
