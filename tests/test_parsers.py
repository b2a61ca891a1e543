from __future__ import annotations

import pytest

from droidbridge.utils.parsers import (
    PackageDetails,
    parse_device_list,
    parse_ipv4_addresses,
    parse_package_details,
    parse_package_list,
    parse_package_paths,
)

DUMPSYS = """\
Packages:
  Package [com.example.app] (3b1c2f0):
    userId=10234
    pkg=Package{9a8b7c6 com.example.app}
    versionCode=4200 minSdk=24 targetSdk=34
    versionName=4.2.0-beta+7
    pkgFlags=[ HAS_CODE ALLOW_CLEAR_USER_DATA ALLOW_BACKUP ]
    requested permissions:
      android.permission.INTERNET
      android.permission.CAMERA
    install permissions:
      android.permission.INTERNET: granted=true

    User 0: ceDataInode=1234 installed=true hidden=false
"""


def test_device_list_basic() -> None:
    text = "List of devices attached\nABC123\tdevice product:pixel model:Pixel_5\n"
    devices = parse_device_list(text)
    assert [d.to_dict() for d in devices] == [
        {"serial": "ABC123", "state": "device", "attributes": {"product": "pixel", "model": "Pixel_5"}}
    ]


@pytest.mark.parametrize("text", ["", "List of devices attached\n", "List of devices attached\r\n\r\n"])
def test_device_list_empty(text: str) -> None:
    assert parse_device_list(text) == []


def test_device_list_keeps_order_and_skips_partial_lines() -> None:
    text = (
        "List of devices attached\n"
        "emulator-5554          device product:sdk_gphone64 model:sdk_gphone64 device:emu64a transport_id:1\n"
        "lonely\n"
        "\n"
        "R58M123    unauthorized usb:1-1 transport_id:2\n"
        "10.0.0.5:5555  offline\n"
    )
    devices = parse_device_list(text)
    assert [d.serial for d in devices] == ["emulator-5554", "R58M123", "10.0.0.5:5555"]
    assert [d.state for d in devices] == ["device", "unauthorized", "offline"]
    assert list(devices[0].attributes) == ["product", "model", "device", "transport_id"]
    assert devices[1].attributes == {"usb": "1-1", "transport_id": "2"}
    assert devices[2].attributes == {}


def test_device_list_ignores_tokens_without_separator() -> None:
    devices = parse_device_list("XYZ device stray product:foo :nokey novalue:\n")
    assert devices[0].attributes == {"product": "foo"}


def test_device_list_unrecognised_state_is_unknown() -> None:
    devices = parse_device_list("XYZ sideload\nQRS recovery\n")
    assert [d.state for d in devices] == ["unknown", "recovery"]


def test_device_line_reconstructs_fields() -> None:
    serial, state = "HT7A1B234567", "device"
    attrs = {"usb": "337641472X", "product": "walleye", "model": "Pixel_2", "device": "walleye"}
    line = f"{serial}\t{state} " + " ".join(f"{k}:{v}" for k, v in attrs.items())
    (record,) = parse_device_list(line)
    assert record.serial == serial
    assert record.state == state
    assert list(record.attributes.items()) == list(attrs.items())


def test_package_list() -> None:
    out = parse_package_list("package:com.foo.bar\npackage:com.baz=1\nnot a package\npackage:\n")
    assert [p.to_dict() for p in out] == [{"package": "com.foo.bar"}, {"package": "com.baz"}]


def test_package_details_defaults() -> None:
    details = parse_package_details("versionName=1.2.3")
    assert details.versionName == "1.2.3"
    assert details.enabled is None
    assert details.versionCode == ""
    assert details.requestedPermissions == []
    assert details.grantedPermissions == []


def test_package_details_full_dump() -> None:
    details = parse_package_details(DUMPSYS)
    assert details.versionName == "4.2.0-beta+7"
    assert details.versionCode == "4200"
    assert details.userId == "10234"
    assert details.appId == ""
    assert details.enabled is True
    # install permissions lines marked granted=true fall out of the block
    assert details.requestedPermissions == [
        "android.permission.INTERNET",
        "android.permission.CAMERA",
        "install permissions:",
    ]


def test_package_details_enabled_false() -> None:
    assert parse_package_details("User 0: installed=true enabled=false").enabled is False


def test_package_details_granted_block() -> None:
    text = "grantedPermissions:\n  android.permission.VIBRATE\n\n  android.permission.WAKE_LOCK\n\nmore"
    assert parse_package_details(text).grantedPermissions == ["android.permission.VIBRATE"]


def test_package_details_block_needs_closing_blank_line() -> None:
    text = "requested permissions:\n  android.permission.INTERNET\n  android.permission.NFC"
    assert parse_package_details(text).requestedPermissions == []
    text = "grantedPermissions:\n  android.permission.VIBRATE\n  android.permission.WAKE_LOCK"
    assert parse_package_details(text).grantedPermissions == []


@pytest.mark.parametrize(
    "junk",
    ["", None, b"\x00\xff\xfe garbage \x89PNG", "requested permissions:", "versionName=", "\n\n\n", 12345],
)
def test_parsers_never_raise(junk) -> None:
    assert isinstance(parse_device_list(junk), list)
    assert isinstance(parse_package_list(junk), list)
    assert isinstance(parse_package_details(junk), PackageDetails)
    assert isinstance(parse_package_paths(junk)[1], list)
    assert isinstance(parse_ipv4_addresses(junk), list)


def test_package_details_to_dict_keys() -> None:
    assert set(parse_package_details("").to_dict()) == {
        "versionName",
        "versionCode",
        "appId",
        "userId",
        "enabled",
        "requestedPermissions",
        "grantedPermissions",
    }


def test_package_paths() -> None:
    text = (
        "package:/data/app/~~x==/com.example-1/base.apk\n"
        "split:/data/app/~~x==/com.example-1/split_config.arm64_v8a.apk\n"
        "warning: something\n"
    )
    base, paths = parse_package_paths(text)
    assert base == "/data/app/~~x==/com.example-1/base.apk"
    assert paths == [base, "/data/app/~~x==/com.example-1/split_config.arm64_v8a.apk"]


def test_ipv4_addresses() -> None:
    text = (
        "30: wlan0    inet 192.168.1.23/24 brd 192.168.1.255 scope global wlan0\n"
        "31: rmnet0    inet 10.20.30.40/30 scope global rmnet0\n"
        "32: wlan0    inet6 fe80::1/64 scope link\n"
    )
    assert parse_ipv4_addresses(text) == ["192.168.1.23", "10.20.30.40"]
