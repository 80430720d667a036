"""Mission lifecycle operations shared by the control server and the CLI's direct fallback."""
from __future__ import annotations

import logging
import re
import shutil
from typing import List, Optional

from ..contracts.v1 import Mission, MissionPatch, MissionState
from ..errors import MissionNotFoundError
from ..paths import HomePaths
from .process import StopOutcome, read_live_pid, stop_process
from .registry import MissionRegistry

logger = logging.getLogger(__name__)

_SHORT_ID_RE = re.compile(r"^[0-9a-fA-F]{8}$")
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def looks_like_mission_id(text: str) -> bool:
    s = str(text or "").strip()
    return bool(_SHORT_ID_RE.match(s) or _UUID_RE.match(s))


def derive_state(paths: HomePaths, mission: Mission) -> MissionState:
    if mission.archived:
        # A recycled pid must never revive an archived mission.
        return "ARCHIVED"
    if read_live_pid(paths.mission_pid_path(mission.id)) > 0:
        return "RUNNING"
    return "STOPPED"


def with_state(paths: HomePaths, mission: Mission) -> Mission:
    return mission.model_copy(update={"state": derive_state(paths, mission)})


class MissionService:
    def __init__(self, paths: HomePaths, registry: Optional[MissionRegistry] = None) -> None:
        self.paths = paths
        self.registry = registry or MissionRegistry(paths)

    def _require(self, id_or_short: str) -> Mission:
        mission = self.registry.get(self.registry.resolve_id(id_or_short))
        if mission is None:
            raise MissionNotFoundError(f"mission not found: {id_or_short}")
        return mission

    def list(self, *, include_archived: bool = False, cron_name: Optional[str] = None) -> List[Mission]:
        out = []
        for m in self.registry.all():
            if m.archived and not include_archived:
                continue
            if cron_name and m.cron_name != cron_name:
                continue
            out.append(with_state(self.paths, m))
        out.sort(key=lambda m: (m.last_active, m.created_at), reverse=True)
        return out

    def get(self, id_or_short: str) -> Mission:
        return with_state(self.paths, self._require(id_or_short))

    def create(
        self,
        *,
        git_repo: str = "",
        prompt: str = "",
        cron_id: Optional[str] = None,
        cron_name: Optional[str] = None,
        config_snapshot: Optional[str] = None,
    ) -> Mission:
        mission = self.registry.create(
            git_repo=git_repo,
            prompt=prompt,
            cron_id=cron_id,
            cron_name=cron_name,
            config_snapshot=config_snapshot,
        )
        self.paths.mission_agent_dir(mission.id).mkdir(parents=True, exist_ok=True)
        logger.info("mission created", extra={"mission_id": mission.id, "short_id": mission.short_id})
        return with_state(self.paths, mission)

    def update(self, id_or_short: str, patch: MissionPatch) -> Mission:
        mission = self._require(id_or_short)
        return with_state(self.paths, self.registry.update(mission.id, patch))

    def stop(self, id_or_short: str) -> StopOutcome:
        mission = self._require(id_or_short)
        outcome = stop_process(self.paths.mission_pid_path(mission.id))
        logger.info("mission stop: %s", outcome, extra={"mission_id": mission.id})
        return outcome

    def archive(self, id_or_short: str) -> Mission:
        mission = self._require(id_or_short)
        if mission.archived:
            return with_state(self.paths, mission)
        stop_process(self.paths.mission_pid_path(mission.id))
        return with_state(self.paths, self.registry.archive(mission.id))

    def heartbeat(self, id_or_short: str) -> Mission:
        mission = self._require(id_or_short)
        return with_state(self.paths, self.registry.heartbeat(mission.id))

    def bind_pane(self, id_or_short: str, pane: str) -> Mission:
        mission = self._require(id_or_short)
        return with_state(self.paths, self.registry.bind_pane(mission.id, pane))

    def remove(self, id_or_short: str) -> str:
        mission = self._require(id_or_short)
        stop_process(self.paths.mission_pid_path(mission.id))
        mission_dir = self.paths.mission_dir(mission.id)
        if mission_dir.exists():
            shutil.rmtree(mission_dir)
        self.registry.delete(mission.id)
        logger.info("mission removed", extra={"mission_id": mission.id})
        return mission.id
