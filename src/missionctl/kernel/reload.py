"""Restart a mission's controlling process without moving it on screen."""
from __future__ import annotations

import logging
import os
import sys
from typing import Callable, List, Literal

from ..contracts.v1 import Mission
from ..errors import MissionArchivedError, PaneGoneError
from ..paths import HOME_ENV_VAR
from ..runners.tmux import TmuxHost

logger = logging.getLogger(__name__)

KEEP_ALIVE_OPTION = "remain-on-exit"

ReloadOutcome = Literal["respawned", "resumed"]


def resume_hint(mission: Mission) -> str:
    return f"use 'missionctl mission resume {mission.short_id}' to restart it in a new window"


def resume_command(mission: Mission) -> List[str]:
    cmd = [sys.executable, "-m", "missionctl", "mission", "resume", mission.id]
    # respawn-pane runs with the tmux server's environment, not ours.
    home = os.environ.get(HOME_ENV_VAR, "").strip()
    return ["env", f"{HOME_ENV_VAR}={home}"] + cmd if home else cmd


def reload_mission(
    mission: Mission,
    *,
    stop: Callable[[str], object],
    resume: Callable[[Mission], object],
    host: TmuxHost,
) -> ReloadOutcome:
    """Stop the mission's wrapper and start it again in the same place.

    With a pane binding the pane's window is told to keep the pane alive while
    the old process dies, and the pane is respawned with the resume command.
    The window's previous keep-alive setting is restored whatever happens.
    Without a binding the mission is stopped and resumed in the foreground.
    """
    if mission.archived:
        raise MissionArchivedError(f"cannot reload archived mission {mission.short_id}")

    if not mission.tmux_pane:
        logger.warning(
            "mission %s has no tmux pane; its window position cannot be preserved",
            mission.short_id,
            extra={"mission_id": mission.id},
        )
        stop(mission.id)
        resume(mission)
        return "resumed"

    pane = mission.tmux_pane
    if not host.pane_exists(pane):
        raise PaneGoneError(f"tmux pane %{pane} of mission {mission.short_id} no longer exists", hint=resume_hint(mission))

    window = host.window_id(pane)
    prior = host.get_window_option(window, KEEP_ALIVE_OPTION)
    host.set_window_option(window, KEEP_ALIVE_OPTION, "on")
    try:
        stop(mission.id)
        host.respawn_pane(pane, resume_command(mission))
    finally:
        try:
            if prior is None:
                host.unset_window_option(window, KEEP_ALIVE_OPTION)
            else:
                host.set_window_option(window, KEEP_ALIVE_OPTION, prior)
        except Exception as e:
            logger.warning("failed to restore %s on %s: %s", KEEP_ALIVE_OPTION, window, e)
    logger.info("mission respawned in pane %%%s", pane, extra={"mission_id": mission.id})
    return "respawned"
