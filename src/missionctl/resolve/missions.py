from __future__ import annotations

from typing import Callable, List, Optional

from ..contracts.v1 import Mission
from ..kernel.missions import looks_like_mission_id
from ..util.table import colorize_state, truncate
from ..util.time import format_local
from .engine import Resolver

MISSION_HEADERS = ("ID", "STATUS", "SESSION", "REPO", "LAST ACTIVE")


def mission_label(m: Mission) -> str:
    return m.session_name or m.prompt or "(no description)"


def mission_row(m: Mission) -> List[str]:
    return [
        m.short_id,
        colorize_state(m.state or ""),
        truncate(mission_label(m), 50),
        m.git_repo or "--",
        format_local(m.last_active),
    ]


class MissionResolver(Resolver):
    """Missions by short id, full UUID, or words from their label and repository."""

    headers = MISSION_HEADERS

    def __init__(
        self,
        *,
        list_missions: Callable[[], List[Mission]],
        get_mission: Callable[[str], Mission],
        prompt: str = "Select mission: ",
        multi_select: bool = False,
        include: Optional[Callable[[Mission], bool]] = None,
    ) -> None:
        self._list = list_missions
        self._get = get_mission
        self._include = include
        self.prompt = prompt
        self.multi_select = multi_select

    def try_canonical(self, text: str) -> Optional[Mission]:
        if not looks_like_mission_id(text):
            return None
        # Raises when no mission has this id.
        return self._get(text)

    def list_items(self) -> List[Mission]:
        missions = self._list()
        if self._include is not None:
            missions = [m for m in missions if self._include(m)]
        return missions

    def extract_search_text(self, item: Mission) -> str:
        return " ".join(x for x in (item.short_id, item.session_name, item.git_repo, item.prompt) if x)

    def format_row(self, item: Mission) -> List[str]:
        return mission_row(item)
