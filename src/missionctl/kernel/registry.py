from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError

from ..contracts.v1 import Mission, MissionPatch
from ..errors import MissionArchivedError, MissionNotFoundError, MissionctlError, RegistryError
from ..paths import HomePaths
from ..util.file_lock import locked
from ..util.fs import atomic_write_json, read_json
from ..util.time import utc_now_iso

SHORT_ID_LEN = 8


def short_id(mission_id: str) -> str:
    return mission_id[:SHORT_ID_LEN]


class MissionRegistry:
    """Durable mission records in `registry.json`.

    Every mutation runs inside `transaction()`: an exclusive flock on
    `registry.lock`, a fresh load, the change, and an atomic replace. That is
    the only serialization between concurrent server threads and CLI fallbacks.
    """

    def __init__(self, paths: HomePaths) -> None:
        self.paths = paths

    def _load(self) -> Dict[str, Any]:
        try:
            doc = read_json(self.paths.registry_path)
        except (OSError, ValueError) as e:
            raise RegistryError(f"failed to open mission registry {self.paths.registry_path}: {e}") from e
        if not doc:
            now = utc_now_iso()
            doc = {"v": 1, "created_at": now, "updated_at": now, "missions": {}}
        missions = doc.get("missions")
        if not isinstance(missions, dict):
            doc["missions"] = {}
        return doc

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Dict[str, Any]]]:
        """Yield the mutable `missions` mapping; it is written back if the block succeeds."""
        with locked(self.paths.registry_lock_path):
            doc = self._load()
            yield doc["missions"]
            doc["updated_at"] = utc_now_iso()
            atomic_write_json(self.paths.registry_path, doc)

    @staticmethod
    def _parse(record: Dict[str, Any]) -> Mission:
        try:
            return Mission.model_validate(record)
        except ValidationError as e:
            raise RegistryError(f"corrupt mission record {record.get('id')!r}: {e}") from e

    # Reads. os.replace makes every load see a whole document, so no lock is taken.

    def all(self) -> List[Mission]:
        return [self._parse(r) for r in self._load()["missions"].values() if isinstance(r, dict)]

    def get(self, mission_id: str) -> Optional[Mission]:
        record = self._load()["missions"].get(mission_id)
        return self._parse(record) if isinstance(record, dict) else None

    def resolve_id(self, user_input: str) -> str:
        """Full UUID or 8-character short id -> full id."""
        key = str(user_input or "").strip().lower()
        if not key:
            raise MissionNotFoundError("missing mission id")
        missions = self._load()["missions"]
        if key in missions:
            return key
        matches = [mid for mid, r in missions.items() if isinstance(r, dict) and r.get("short_id") == key]
        if not matches:
            raise MissionNotFoundError(f"mission not found: {user_input}")
        if len(matches) > 1:
            raise MissionctlError(
                f"short id {user_input} is ambiguous ({len(matches)} missions)",
                hint="pass the full mission UUID",
            )
        return matches[0]

    # Writes.

    def create(
        self,
        *,
        git_repo: str = "",
        prompt: str = "",
        cron_id: Optional[str] = None,
        cron_name: Optional[str] = None,
        config_snapshot: Optional[str] = None,
    ) -> Mission:
        mission_id = str(uuid.uuid4())
        now = utc_now_iso()
        mission = Mission(
            id=mission_id,
            short_id=short_id(mission_id),
            git_repo=git_repo,
            prompt=prompt,
            cron_id=cron_id or None,
            cron_name=cron_name or None,
            config_snapshot=config_snapshot or None,
            created_at=now,
            updated_at=now,
        )
        with self.transaction() as missions:
            missions[mission_id] = mission.to_record()
        return mission

    def _mutate_active(self, missions: Dict[str, Dict[str, Any]], mission_id: str, what: str) -> Dict[str, Any]:
        record = missions.get(mission_id)
        if not isinstance(record, dict):
            raise MissionNotFoundError(f"mission not found: {mission_id}")
        if record.get("status") == "archived":
            raise MissionArchivedError(f"cannot {what} archived mission {short_id(mission_id)}")
        return record

    def update(self, mission_id: str, patch: MissionPatch) -> Mission:
        with self.transaction() as missions:
            record = self._mutate_active(missions, mission_id, "update")
            for k, v in patch.model_dump(exclude_none=True).items():
                # An empty snapshot id unpins the mission.
                record[k] = (v or None) if k == "config_snapshot" else v
            record["updated_at"] = utc_now_iso()
        return self._parse(record)

    def heartbeat(self, mission_id: str) -> Mission:
        with self.transaction() as missions:
            record = self._mutate_active(missions, mission_id, "heartbeat")
            record["last_heartbeat"] = utc_now_iso()
        return self._parse(record)

    def bind_pane(self, mission_id: str, pane: str) -> Mission:
        pane = str(pane or "").strip().lstrip("%")
        with self.transaction() as missions:
            record = self._mutate_active(missions, mission_id, "bind a pane to")
            record["tmux_pane"] = pane or None
            record["updated_at"] = utc_now_iso()
        return self._parse(record)

    def archive(self, mission_id: str) -> Mission:
        with self.transaction() as missions:
            record = missions.get(mission_id)
            if not isinstance(record, dict):
                raise MissionNotFoundError(f"mission not found: {mission_id}")
            if record.get("status") != "archived":
                record["status"] = "archived"
                record["tmux_pane"] = None
                record["updated_at"] = utc_now_iso()
        return self._parse(record)

    def delete(self, mission_id: str) -> None:
        with self.transaction() as missions:
            if mission_id not in missions:
                raise MissionNotFoundError(f"mission not found: {mission_id}")
            del missions[mission_id]
