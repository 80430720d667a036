from __future__ import annotations

from .cron import CronJob, CronOverlap
from .ipc import ServerError, ServerRequest, ServerResponse
from .mission import Mission, MissionPatch, MissionQuery, MissionState, MissionStatus

__all__ = [
    "CronJob",
    "CronOverlap",
    "Mission",
    "MissionPatch",
    "MissionQuery",
    "MissionState",
    "MissionStatus",
    "ServerError",
    "ServerRequest",
    "ServerResponse",
]
