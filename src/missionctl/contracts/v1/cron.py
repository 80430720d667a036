from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

CronOverlap = Literal["skip", "allow"]


class CronJob(BaseModel):
    name: str
    schedule: str
    prompt: str
    repo: Optional[str] = None
    timeout: str = "1h"
    overlap: CronOverlap = "skip"
    enabled: bool = True

    model_config = ConfigDict(extra="ignore")

    @field_validator("name", "schedule")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        v = str(value or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v
