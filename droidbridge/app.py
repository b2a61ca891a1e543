#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Flask + Socket.IO front end: REST endpoints, logcat SSE and the static UI."""

import contextlib
import os
import secrets
import subprocess

from flask import Blueprint, Flask, Response, current_app, jsonify, request
from flask_socketio import SocketIO, emit
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from . import engine
from .errors import BadRequest, BridgeError
from .runner import AdbRunner
from .utils import Config, add_log_listener, cmd_log, log, prog_log
from .utils.logstream import open_log_stream, sse_event

CHUNK = 64 * 1024
APK_MIMETYPE = "application/vnd.android.package-archive"

socketio = SocketIO()
api = Blueprint("api", __name__)


# ---------- helper : push incremental state ----------
def push_state(delta: dict):
    """Emit only the changed pieces to every connected client."""
    if delta and socketio.server is not None:
        socketio.emit("state_delta", delta, namespace="/ui")


def _broadcasting_log(line: str, dest: str):
    push_state({f"{dest}_append": line})


def _reply(result):
    status, body = result
    return jsonify(body), status


def _body() -> dict:
    """JSON body, or form fields for multipart uploads."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _runner() -> AdbRunner:
    return current_app.runner


def _save_upload(field: str, label: str) -> str:
    f = request.files.get(field)
    if f is None or not f.filename:
        raise BadRequest(f"{label} required")
    ext = os.path.splitext(secure_filename(f.filename))[1]
    path = os.path.join(current_app.bridge_config.upload_dir, secrets.token_hex(8) + ext)
    f.save(path)
    return path


def _discard(path: str):
    with contextlib.suppress(FileNotFoundError):
        os.remove(path)


# —— Home ——
@api.route("/")
def home():
    return current_app.send_static_file("index.html")


# —— Server & devices ——
@api.route("/api/version")
def version():
    return _reply(engine.adb_version(_runner()))


@api.route("/api/devices")
def devices():
    return _reply(engine.list_devices(_runner()))


@api.route("/api/ip")
def device_ip():
    return _reply(engine.device_ips(_runner(), request.args.get("serial")))


@api.route("/api/tcpip", methods=["POST"])
def tcpip():
    b = _body()
    return _reply(engine.enable_tcpip(_runner(), b.get("serial"), b.get("port")))


@api.route("/api/adb/kill-server", methods=["POST"])
def adb_kill_server():
    return _reply(engine.kill_server(_runner()))


@api.route("/api/adb/start-server", methods=["POST"])
def adb_start_server():
    return _reply(engine.start_server(_runner()))


# —— Push & install ——
@api.route("/api/push", methods=["POST"])
def push():
    b = request.form
    serial, remote = b.get("serial"), b.get("remote")
    if not serial:
        raise BadRequest("serial required")
    tmp = _save_upload("file", "file")
    try:
        if not remote:
            raise BadRequest("remote path required")
        return _reply(engine.push_file(_runner(), serial, tmp, remote))
    finally:
        _discard(tmp)


@api.route("/api/install", methods=["POST"])
def install():
    b = request.form
    serial = b.get("serial")
    if not serial:
        raise BadRequest("serial required")
    tmp = _save_upload("apk", "apk file")
    try:
        return _reply(engine.install_apk(
            _runner(), serial, tmp,
            reinstall=b.get("reinstall") == "true",
            grant=b.get("grant") == "true",
            downgrade=b.get("downgrade") == "true",
        ))
    finally:
        _discard(tmp)


# —— Shell ——
@api.route("/api/shell", methods=["POST"])
def shell():
    b = _body()
    return _reply(engine.run_shell(_runner(), b.get("serial"), b.get("cmd"), b.get("timeoutMs")))


# —— Logcat (SSE) ——
@api.route("/api/logcat")
def logcat():
    serial = request.args.get("serial")
    if not serial:
        return Response("serial required", status=400, mimetype="text/plain")
    stream = open_log_stream(_runner(), serial, request.args.get("filter"))
    try:
        stream.start()
    except OSError as e:
        stream.close()
        log(f"logcat {serial} failed: {e}")
        return jsonify({"ok": False, "error": f"Command failed to start: {e}"}), 500

    def generate():
        try:
            for line in stream:
                yield sse_event(line.text)
        finally:
            stream.close()

    resp = Response(generate(), mimetype="text/event-stream",
                    headers={"Cache-Control": "no-cache, no-transform",
                             "X-Accel-Buffering": "no"})
    # runs even when the client leaves before the first event
    resp.call_on_close(stream.close)
    return resp


# —— Packages ——
@api.route("/api/packages")
def packages():
    a = request.args
    return _reply(engine.list_packages(_runner(), a.get("serial"), a.get("type", "user")))


@api.route("/api/package")
def package():
    a = request.args
    return _reply(engine.package_details(_runner(), a.get("serial"), a.get("pkg")))


@api.route("/api/package/uninstall", methods=["POST"])
def package_uninstall():
    b = _body()
    return _reply(engine.uninstall_package(_runner(), b.get("serial"), b.get("pkg"),
                                           b.get("user0only", False)))


@api.route("/api/package/disable", methods=["POST"])
def package_disable():
    b = _body()
    return _reply(engine.disable_package(_runner(), b.get("serial"), b.get("pkg")))


@api.route("/api/package/enable", methods=["POST"])
def package_enable():
    b = _body()
    return _reply(engine.enable_package(_runner(), b.get("serial"), b.get("pkg")))


@api.route("/api/package/grant", methods=["POST"])
def package_grant():
    b = _body()
    return _reply(engine.grant_permission(_runner(), b.get("serial"), b.get("pkg"), b.get("permission")))


@api.route("/api/package/revoke", methods=["POST"])
def package_revoke():
    b = _body()
    return _reply(engine.revoke_permission(_runner(), b.get("serial"), b.get("pkg"), b.get("permission")))


# —— APK download ——
def _stream_base_apk(runner, serial: str, base_path: str, pkg: str):
    try:
        proc = runner.spawn(["-s", serial, "exec-out", "cat", base_path],
                            stderr=subprocess.DEVNULL)
    except OSError as e:
        return jsonify({"ok": False, "error": str(e)}), 500

    def stop():
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        if proc.stdout:
            proc.stdout.close()

    def generate():
        try:
            while True:
                chunk = proc.stdout.read(CHUNK)
                if not chunk:
                    break
                yield chunk
        finally:
            stop()

    resp = Response(generate(), mimetype=APK_MIMETYPE, headers={
        "Content-Disposition": f'attachment; filename="{engine.safe_filename(pkg)}.apk"'})
    resp.call_on_close(stop)
    return resp


def _stream_file(path: str, workdir: str):
    def generate():
        try:
            with open(path, "rb") as fh:
                while True:
                    chunk = fh.read(CHUNK)
                    if not chunk:
                        break
                    yield chunk
        finally:
            engine.remove_workdir(workdir)
    return generate()


@api.route("/api/package/apk")
def package_apk():
    a = request.args
    serial, pkg = a.get("serial"), a.get("pkg")
    kind = (a.get("type") or "base").lower()
    runner = _runner()
    err, base, paths = engine.apk_paths(runner, serial, pkg)
    if err:
        return _reply(err)

    if kind == "base" and base:
        return _stream_base_apk(runner, serial, base, pkg)

    workdir = engine.make_workdir(current_app.bridge_config)
    try:
        archive = engine.pull_apks_zip(runner, serial, paths, workdir)
    except OSError as e:
        engine.remove_workdir(workdir)
        return jsonify({"ok": False, "error": str(e)}), 500
    if archive is None:
        engine.remove_workdir(workdir)
        if base:
            return _stream_base_apk(runner, serial, base, pkg)
        return jsonify({"ok": False, "error": "pull failed"}), 500

    resp = Response(_stream_file(archive, workdir), mimetype="application/zip", headers={
        "Content-Disposition": f'attachment; filename="{engine.safe_filename(pkg)}.apks.zip"'})
    resp.call_on_close(lambda: engine.remove_workdir(workdir))
    return resp


# ------ error handlers ------
def _handle_bridge_error(e: BridgeError):
    return jsonify(e.to_dict()), e.status


def _handle_http_error(e: HTTPException):
    if e.code == 404:
        return jsonify({"ok": False, "error": "Not found"}), 404
    return jsonify({"ok": False, "error": e.description or e.name}), e.code


# ------ UI namespace ------
@socketio.on("connect", namespace="/ui")
def ui_connect(auth=None):
    """Send the activity log snapshot to a freshly connected client."""
    emit("state_delta", {"prog_init": list(prog_log), "cmd_init": list(cmd_log)})


def create_app(config: Config | None = None, runner: AdbRunner | None = None,
               async_mode: str = "threading") -> Flask:
    """Build the Flask app. ``runner`` defaults to an AdbRunner over ``config``."""
    if config is None:
        config = Config.from_env()
    app = Flask(__name__, static_folder="static", static_url_path="")
    app.config["MAX_CONTENT_LENGTH"] = config.upload_limit
    app.bridge_config = config
    app.runner = runner or AdbRunner(config)
    app.register_blueprint(api)
    app.register_error_handler(BridgeError, _handle_bridge_error)
    app.register_error_handler(HTTPException, _handle_http_error)

    # Allow CORS from any origin
    socketio.init_app(app, async_mode=async_mode, cors_allowed_origins="*")
    add_log_listener(_broadcasting_log)
    return app
