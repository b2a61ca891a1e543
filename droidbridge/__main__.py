#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os  # must import os before checking os.name

# eventlet is used for async support. It tends to behave poorly on Windows, so
# only enable it on non-Windows platforms. If importing or patching fails we
# fall back to Flask-SocketIO's default threading mode.
if os.name != 'nt':
    try:
        import eventlet
        # Patch standard library to cooperate with eventlet (monkey-patch before
        # other imports)
        eventlet.monkey_patch()
        _async_mode = 'eventlet'
    except Exception:
        eventlet = None
        _async_mode = 'threading'
else:
    eventlet = None
    _async_mode = 'threading'

from .app import create_app, socketio  # noqa: E402
from .utils import Config  # noqa: E402


def main():
    config = Config.from_env()
    app = create_app(config, async_mode=_async_mode)

    v = app.runner.run(["version"])
    if not v.ok:
        print("[!] adb not available:", v.error)
        print("    Install Android platform-tools and ensure `adb` is in PATH, or set ADB_PATH in .env")
    else:
        lines = v.stdout.strip().splitlines()
        print("[OK] " + (lines[0] if lines else "adb"))
    print(f"HTTP on :{config.port}")
    print(f"Open: http://localhost:{config.port}")

    kwargs = {}
    if _async_mode == 'threading':
        kwargs["allow_unsafe_werkzeug"] = True
    socketio.run(app, host=config.host, port=config.port, **kwargs)


if __name__ == "__main__":
    main()
