from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

HOME_ENV_VAR = "MISSIONCTL_HOME"
TMUX_ENV_VAR = "MISSIONCTL_TMUX"
SERVER_ENV_VAR = "MISSIONCTL_SERVER_PROCESS"


def missionctl_home() -> Path:
    env = os.environ.get(HOME_ENV_VAR, "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".missionctl").resolve()


@dataclass(frozen=True)
class HomePaths:
    """Every file location owned by one configuration root.

    Passed explicitly into the supervisor, server, client and registry so that
    several roots can coexist in one process (tests do this).
    """

    home: Path

    @property
    def server_dir(self) -> Path:
        return self.home / "server"

    @property
    def sock_path(self) -> Path:
        return self.server_dir / "server.sock"

    @property
    def pid_path(self) -> Path:
        return self.server_dir / "server.pid"

    @property
    def lock_path(self) -> Path:
        return self.server_dir / "server.lock"

    @property
    def log_path(self) -> Path:
        return self.server_dir / "server.log"

    @property
    def legacy_pid_path(self) -> Path:
        # Written by the previous generation's background daemon.
        return self.home / "daemon" / "daemon.pid"

    @property
    def registry_path(self) -> Path:
        return self.home / "registry.json"

    @property
    def registry_lock_path(self) -> Path:
        return self.home / "registry.lock"

    @property
    def settings_path(self) -> Path:
        return self.home / "settings.yaml"

    @property
    def missions_dir(self) -> Path:
        return self.home / "missions"

    @property
    def repos_dir(self) -> Path:
        return self.home / "repos"

    def mission_dir(self, mission_id: str) -> Path:
        return self.missions_dir / mission_id

    def mission_agent_dir(self, mission_id: str) -> Path:
        return self.mission_dir(mission_id) / "agent"

    def mission_pid_path(self, mission_id: str) -> Path:
        return self.mission_dir(mission_id) / "pid"

    def ensure(self) -> "HomePaths":
        for d in (self.home, self.server_dir, self.missions_dir, self.repos_dir):
            d.mkdir(parents=True, exist_ok=True)
        return self


def default_paths() -> HomePaths:
    return HomePaths(home=missionctl_home()).ensure()


def inside_managed_tmux() -> bool:
    return os.environ.get(TMUX_ENV_VAR, "").strip() == "1"
