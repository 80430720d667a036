from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from ...util.time import utc_now_iso

# Stored lifecycle status. "archived" is terminal.
MissionStatus = Literal["active", "archived"]

# Derived at query time, never persisted.
MissionState = Literal["RUNNING", "STOPPED", "ARCHIVED"]


class Mission(BaseModel):
    v: int = 1
    id: str
    short_id: str
    status: MissionStatus = "active"
    git_repo: str = ""
    prompt: str = ""
    session_name: str = ""
    tmux_pane: Optional[str] = None
    cron_id: Optional[str] = None
    cron_name: Optional[str] = None
    config_snapshot: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    last_heartbeat: Optional[str] = None
    # Filled in by the server on every response; ignored when stored.
    state: Optional[MissionState] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def archived(self) -> bool:
        return self.status == "archived"

    @property
    def last_active(self) -> str:
        return self.last_heartbeat or self.created_at

    def to_record(self) -> dict:
        return self.model_dump(exclude={"state"})


class MissionPatch(BaseModel):
    """Partial update: only fields that are not None are applied."""

    prompt: Optional[str] = None
    config_snapshot: Optional[str] = None
    session_name: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class MissionQuery(BaseModel):
    """Filters for missions/list. Booleans must be real JSON booleans."""

    include_archived: StrictBool = False
    cron_name: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("cron_name")
    @classmethod
    def _blank_is_none(cls, value: Optional[str]) -> Optional[str]:
        value = (value or "").strip()
        return value or None
