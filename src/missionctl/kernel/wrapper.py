"""The controlling process of a running mission (`missionctl mission resume`)."""
from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from pathlib import Path
from typing import Any, List, Optional

from ..contracts.v1 import Mission
from ..daemon.client import ControlClient
from ..errors import MissionArchivedError, MissionctlError
from ..paths import HomePaths
from ..util.fs import remove_quietly
from .process import read_live_pid, read_pid, write_pid

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_S = 60.0
MISSION_ENV_VAR = "MISSIONCTL_MISSION_ID"


class MissionWrapper:
    def __init__(
        self,
        paths: HomePaths,
        mission: Mission,
        *,
        agent_command: List[str],
        client: ControlClient,
        heartbeat_interval_s: float = HEARTBEAT_INTERVAL_S,
    ) -> None:
        self.paths = paths
        self.mission = mission
        self.agent_command = list(agent_command)
        self.client = client
        self.heartbeat_interval_s = heartbeat_interval_s
        self._stop = threading.Event()
        self._child: Optional[subprocess.Popen] = None

    @property
    def pid_path(self) -> Path:
        return self.paths.mission_pid_path(self.mission.id)

    def _bind_pane(self) -> None:
        pane = os.environ.get("TMUX_PANE", "").strip()
        if not pane:
            return
        try:
            self.client.bind_pane(self.mission.id, pane)
        except MissionctlError as e:
            logger.warning("failed to record tmux pane %s: %s", pane, e, extra={"mission_id": self.mission.id})

    def _heartbeat_loop(self) -> None:
        while not self._stop.wait(self.heartbeat_interval_s):
            try:
                self.client.heartbeat(self.mission.id)
            except MissionctlError as e:
                logger.debug("heartbeat failed: %s", e, extra={"mission_id": self.mission.id})

    def _forward_sigterm(self, signum: int, frame: Any) -> None:
        child = self._child
        if child is not None and child.poll() is None:
            child.send_signal(signal.SIGTERM)

    def run(self) -> int:
        if self.mission.archived:
            raise MissionArchivedError(f"cannot resume archived mission {self.mission.short_id}")
        running = read_live_pid(self.pid_path)
        if running > 0 and running != os.getpid():
            raise MissionctlError(
                f"mission {self.mission.short_id} is already running (pid {running})",
                hint=f"use 'missionctl mission reload {self.mission.short_id}' to restart it",
            )

        agent_dir = self.paths.mission_agent_dir(self.mission.id)
        agent_dir.mkdir(parents=True, exist_ok=True)
        write_pid(self.pid_path, os.getpid())
        prev_handler = signal.signal(signal.SIGTERM, self._forward_sigterm)
        try:
            self._bind_pane()
            env = os.environ.copy()
            env[MISSION_ENV_VAR] = self.mission.id
            try:
                self._child = subprocess.Popen(self.agent_command, cwd=str(agent_dir), env=env)
            except OSError as e:
                raise MissionctlError(
                    f"failed to start {self.agent_command[0]!r}: {e}",
                    hint="set 'agent_command' in settings.yaml",
                ) from e
            logger.info("agent started", extra={"mission_id": self.mission.id, "pid": self._child.pid})
            threading.Thread(target=self._heartbeat_loop, name="missionctl-heartbeat", daemon=True).start()
            return int(self._child.wait())
        finally:
            self._stop.set()
            signal.signal(signal.SIGTERM, prev_handler)
            if read_pid(self.pid_path) == os.getpid():
                remove_quietly(self.pid_path)
