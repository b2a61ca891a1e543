"""Utility package exposing config, the activity log, parsers and the logcat relay."""

# Core helpers
from .core import Config, adb_cmd, log, prog_log, cmd_log, add_log_listener, remove_log_listener  # noqa: F401

# Text scrapers
from .parsers import (  # noqa: F401
    DeviceRecord,
    PackageDetails,
    PackageRecord,
    parse_device_list,
    parse_ipv4_addresses,
    parse_package_details,
    parse_package_list,
    parse_package_paths,
)

# logcat relay
from .logstream import LogLine, LogStream, open_log_stream, sse_event  # noqa: F401
