from __future__ import annotations

import json
import logging
import os
import signal
import socket
import threading
import time
from typing import Any, Dict, Optional, Set

from .. import __version__
from ..contracts.v1 import ServerError, ServerRequest, ServerResponse
from ..kernel.missions import MissionService
from ..kernel.process import write_pid
from ..kernel.settings import load_settings
from ..errors import MissionctlError
from ..paths import HomePaths, default_paths
from ..util.file_lock import LockUnavailableError, acquire_lockfile, release_lockfile, write_lock_owner
from ..util.fs import remove_quietly
from ..util.obslog import setup_root_json_logging
from .ops.mission_ops import HANDLERS

logger = logging.getLogger(__name__)

MAX_REQUEST_BYTES = 2_000_000
ACCEPT_TICK_S = 0.2


def _recv_json_line(conn: socket.socket) -> Dict[str, Any]:
    buf = b""
    while b"\n" not in buf:
        chunk = conn.recv(65536)
        if not chunk:
            break
        buf += chunk
        if len(buf) > MAX_REQUEST_BYTES:
            break
    line = buf.split(b"\n", 1)[0]
    try:
        obj = json.loads(line.decode("utf-8", errors="replace"))
    except ValueError:
        return {}
    return obj if isinstance(obj, dict) else {}


def _send_json(conn: socket.socket, obj: Dict[str, Any]) -> None:
    data = (json.dumps(obj, ensure_ascii=False) + "\n").encode("utf-8")
    conn.sendall(data)


def _error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> ServerResponse:
    return ServerResponse(ok=False, error=ServerError(code=code, message=message, details=details or {}))


class ControlServer:
    """One control server per configuration root.

    Each accepted connection carries exactly one request line and gets exactly
    one response line, served on its own thread.
    """

    def __init__(self, paths: HomePaths, *, version: str = __version__) -> None:
        self.paths = paths
        self.version = version
        self.service = MissionService(paths)
        self.ready = threading.Event()
        self._stop = threading.Event()
        self._workers: Set[threading.Thread] = set()
        self._workers_lock = threading.Lock()

    def handle_request(self, req: ServerRequest) -> ServerResponse:
        op = str(req.op or "").strip()
        args = req.args or {}

        if op == "health":
            return ServerResponse(ok=True, result={"status": "ok", "version": self.version, "pid": os.getpid()})

        handler = HANDLERS.get(op)
        if handler is None:
            return _error("unknown_op", f"unknown op: {op}")
        return handler(self.service, args)

    def _serve_connection(self, conn: socket.socket) -> None:
        started = time.monotonic()
        op = ""
        try:
            with conn:
                conn.settimeout(30.0)
                raw = _recv_json_line(conn)
                try:
                    req = ServerRequest.model_validate(raw)
                except ValueError as e:
                    resp = _error("invalid_request", "invalid request", details={"error": str(e)})
                else:
                    op = req.op
                    try:
                        resp = self.handle_request(req)
                    except Exception as e:
                        logger.exception("request failed", extra={"op": op})
                        resp = _error("internal_error", f"{type(e).__name__}: {e}")
                try:
                    _send_json(conn, resp.model_dump())
                except OSError:
                    # Client disconnected before the response was sent.
                    pass
        except OSError as e:
            logger.warning("connection error: %s", e, extra={"op": op or None})
            return
        finally:
            with self._workers_lock:
                self._workers.discard(threading.current_thread())
        logger.info(
            "request",
            extra={
                "op": op or None,
                "ok": resp.ok,
                "code": resp.error.code if resp.error else None,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )

    def shutdown(self) -> None:
        self._stop.set()

    def serve_forever(self, *, install_signal_handlers: bool = True) -> int:
        p = self.paths.ensure()

        try:
            lock_f = acquire_lockfile(p.lock_path, blocking=False)
        except LockUnavailableError:
            logger.info("another control server holds %s; exiting", p.lock_path)
            return 0
        write_lock_owner(lock_f)

        try:
            if install_signal_handlers and threading.current_thread() is threading.main_thread():
                # Graceful shutdown on SIGTERM/SIGINT
                def _signal_handler(signum: int, frame: Any) -> None:
                    self._stop.set()

                signal.signal(signal.SIGTERM, _signal_handler)
                signal.signal(signal.SIGINT, _signal_handler)

            # We hold the lock, so any socket left behind belongs to a dead server.
            remove_quietly(p.sock_path)

            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as s:
                s.bind(str(p.sock_path))
                os.chmod(p.sock_path, 0o600)
                s.listen(50)
                s.settimeout(ACCEPT_TICK_S)
                write_pid(p.pid_path, os.getpid())
                logger.info("control server listening", extra={"pid": os.getpid()})
                self.ready.set()

                while not self._stop.is_set():
                    try:
                        conn, _ = s.accept()
                    except socket.timeout:
                        continue
                    except OSError as e:
                        if self._stop.is_set():
                            break
                        logger.warning("accept failed: %s", e)
                        continue
                    t = threading.Thread(target=self._serve_connection, args=(conn,), name="missionctl-conn", daemon=True)
                    with self._workers_lock:
                        self._workers.add(t)
                    t.start()

            with self._workers_lock:
                in_flight = list(self._workers)
            for t in in_flight:
                t.join(timeout=15.0)
        finally:
            remove_quietly(p.sock_path)
            remove_quietly(p.pid_path)
            release_lockfile(lock_f)
            self.ready.clear()
        logger.info("control server stopped")
        return 0


def serve_forever(paths: Optional[HomePaths] = None) -> int:
    p = paths or default_paths()
    settings_error = ""
    try:
        level = load_settings(p).log_level
    except MissionctlError as e:
        settings_error = str(e)
        level = "INFO"
    setup_root_json_logging(component="server", level=level)
    if settings_error:
        logger.warning("%s; using default settings", settings_error)
    return ControlServer(p).serve_forever()
