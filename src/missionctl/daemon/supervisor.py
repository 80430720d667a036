"""Keeps exactly one version-matched control server alive per configuration root."""
from __future__ import annotations

import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional, TextIO

from .. import __version__
from ..errors import MissionctlError, ReadinessTimeoutError
from ..paths import HOME_ENV_VAR, SERVER_ENV_VAR, HomePaths
from ..kernel.process import StopOutcome, read_live_pid, spawn_detached, stop_process, write_pid
from .client import ControlClient

logger = logging.getLogger(__name__)

READY_TIMEOUT_S = 5.0
READY_POLL_S = 0.05
HEALTH_TIMEOUT_S = 1.0


def is_server_process() -> bool:
    return os.environ.get(SERVER_ENV_VAR, "").strip() == "1"


class Supervisor:
    def __init__(
        self,
        paths: HomePaths,
        *,
        version: str = __version__,
        client: Optional[ControlClient] = None,
        ready_timeout_s: float = READY_TIMEOUT_S,
        ready_poll_s: float = READY_POLL_S,
    ) -> None:
        self.paths = paths
        self.version = version
        self.client = client or ControlClient(paths)
        self.ready_timeout_s = ready_timeout_s
        self.ready_poll_s = ready_poll_s

    def _server_command(self) -> List[str]:
        return [sys.executable, "-m", "missionctl.daemon_main", "start"]

    def _server_env(self) -> Dict[str, str]:
        env = os.environ.copy()
        env[SERVER_ENV_VAR] = "1"
        env[HOME_ENV_VAR] = str(self.paths.home)
        return env

    def _wait_ready(self, child_pid: int) -> int:
        deadline = time.monotonic() + self.ready_timeout_s
        while True:
            try:
                result = self.client.health(timeout_s=HEALTH_TIMEOUT_S)
            except MissionctlError:
                result = None
            if result is not None:
                pid = int(result.get("pid") or 0)
                if pid > 0 and pid != child_pid:
                    # Another starter won the server lock; record the real owner.
                    write_pid(self.paths.pid_path, pid)
                    return pid
                return child_pid
            if time.monotonic() >= deadline:
                raise ReadinessTimeoutError(
                    f"control server did not become ready within {self.ready_timeout_s:g}s",
                    hint=f"see {self.paths.log_path}",
                )
            time.sleep(self.ready_poll_s)

    def start(self) -> int:
        """Start the server in the background and return its pid once it answers health checks.

        Inside the spawned server process itself this runs the serve loop instead.
        """
        if is_server_process():
            from .server import serve_forever

            serve_forever(self.paths)
            return os.getpid()

        p = self.paths.ensure()
        pid = read_live_pid(p.pid_path)
        if pid > 0:
            logger.info("control server already running", extra={"pid": pid})
            return pid

        child = spawn_detached(self._server_command(), log_path=p.log_path, env=self._server_env(), cwd=p.home)
        write_pid(p.pid_path, child)
        logger.info("spawned control server", extra={"pid": child})
        return self._wait_ready(child)

    def ensure_running(self) -> None:
        try:
            self.start()
        except Exception as e:
            logger.debug("ensure_running failed: %s", e)

    def stop(self) -> StopOutcome:
        return stop_process(self.paths.pid_path)

    def restart(self) -> int:
        self.stop()
        return self.start()

    def check_version(self, *, stderr: Optional[TextIO] = None) -> bool:
        """Restart a server whose reported version differs from ours. Never raises."""
        try:
            result = self.client.health(timeout_s=HEALTH_TIMEOUT_S)
            running = str(result.get("version") or "")
            if not running or running == self.version:
                return False
            print(
                f"missionctl: restarting control server ({running} -> {self.version})",
                file=stderr or sys.stderr,
            )
            self.restart()
            return True
        except Exception as e:
            logger.debug("version check skipped: %s", e)
            return False

    def cleanup_legacy_daemon(self) -> None:
        try:
            outcome = stop_process(self.paths.legacy_pid_path)
            if outcome != "not_running":
                logger.info("stopped legacy daemon: %s", outcome)
        except Exception as e:
            logger.debug("legacy daemon cleanup failed: %s", e)

    def status(self) -> Dict[str, Any]:
        pid = read_live_pid(self.paths.pid_path)
        out: Dict[str, Any] = {"running": pid > 0, "pid": pid, "version": None, "sock_path": str(self.paths.sock_path)}
        if pid > 0:
            try:
                out["version"] = self.client.health(timeout_s=HEALTH_TIMEOUT_S).get("version")
            except MissionctlError:
                out["responding"] = False
            else:
                out["responding"] = True
        return out
