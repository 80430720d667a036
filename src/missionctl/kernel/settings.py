"""Global settings for missionctl.

Settings are stored in <home>/settings.yaml and include:
- log_level: level for the control server's JSONL log
- agent_command: argv run inside each mission's agent directory
- crons: scheduled mission definitions
- templates: template name -> repository
"""
from __future__ import annotations

from typing import Dict, List

import yaml  # type: ignore
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..contracts.v1 import CronJob
from ..errors import MissionctlError
from ..paths import HomePaths

DEFAULT_AGENT_COMMAND: List[str] = ["claude"]


class Settings(BaseModel):
    log_level: str = "INFO"
    agent_command: List[str] = Field(default_factory=lambda: list(DEFAULT_AGENT_COMMAND))
    crons: List[CronJob] = Field(default_factory=list)
    templates: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("agent_command")
    @classmethod
    def _command_not_empty(cls, value: List[str]) -> List[str]:
        cmd = [str(x) for x in value if str(x).strip()]
        return cmd or list(DEFAULT_AGENT_COMMAND)

    def cron(self, name: str) -> CronJob:
        for c in self.crons:
            if c.name == name:
                return c
        raise MissionctlError(f"cron not found: {name}", hint="see 'crons:' in settings.yaml")


def load_settings(paths: HomePaths) -> Settings:
    """Load settings.yaml; a missing or empty file yields defaults."""
    p = paths.settings_path
    if not p.exists():
        return Settings()
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise MissionctlError(f"failed to read {p}: {e}") from e
    if not isinstance(doc, dict):
        raise MissionctlError(f"invalid settings file {p}: expected a mapping")
    try:
        return Settings.model_validate(doc)
    except ValidationError as e:
        raise MissionctlError(f"invalid settings file {p}: {e}") from e

