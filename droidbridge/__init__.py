"""DroidBridge: a small web front end for adb."""

__version__ = "0.1.0"
