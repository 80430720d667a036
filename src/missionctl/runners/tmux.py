from __future__ import annotations

import os
import shlex
import subprocess
from typing import List, Optional, Tuple

from ..errors import MissionctlError


def _run_tmux(args: List[str], *, timeout_s: float = 3.0) -> Tuple[int, str, str]:
    try:
        p = subprocess.run(
            ["tmux", *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout_s,
            check=False,
        )
        return int(p.returncode), (p.stdout or ""), (p.stderr or "")
    except subprocess.TimeoutExpired:
        return 124, "", "tmux timeout"
    except OSError as e:
        return 127, "", str(e)


def pane_target(pane: str) -> str:
    """Stored pane handles omit tmux's `%` prefix."""
    p = str(pane or "").strip()
    return p if p.startswith("%") else f"%{p}"


def inside_tmux() -> bool:
    return bool(os.environ.get("TMUX", "").strip())


def popup_command(shell_cmd: str, *, width: str = "80%", height: str = "70%") -> List[str]:
    """Run a shell command line inside a `tmux display-popup` that closes when it exits."""
    return ["tmux", "display-popup", "-E", "-w", width, "-h", height, shell_cmd]


class TmuxHost:
    """The slice of tmux that in-place mission reload needs."""

    def pane_exists(self, pane: str) -> bool:
        code, out, _ = _run_tmux(["display-message", "-p", "-t", pane_target(pane), "#{pane_id}"])
        return code == 0 and bool(out.strip())

    def window_id(self, pane: str) -> str:
        code, out, err = _run_tmux(["display-message", "-p", "-t", pane_target(pane), "#{window_id}"])
        if code != 0 or not out.strip():
            raise MissionctlError(f"tmux: cannot resolve window of pane {pane_target(pane)}: {err.strip()}")
        return out.strip()

    def get_window_option(self, window: str, name: str) -> Optional[str]:
        """Window-local value, or None when the option is not set on the window."""
        code, out, _ = _run_tmux(["show-options", "-w", "-v", "-t", window, name])
        if code != 0:
            return None
        value = out.strip()
        return value or None

    def set_window_option(self, window: str, name: str, value: str) -> None:
        code, _, err = _run_tmux(["set-option", "-w", "-t", window, name, value])
        if code != 0:
            raise MissionctlError(f"tmux set-option {name} failed: {err.strip()}")

    def unset_window_option(self, window: str, name: str) -> None:
        code, _, err = _run_tmux(["set-option", "-w", "-u", "-t", window, name])
        if code != 0:
            raise MissionctlError(f"tmux set-option -u {name} failed: {err.strip()}")

    def respawn_pane(self, pane: str, command: List[str]) -> None:
        line = " ".join(shlex.quote(x) for x in command)
        code, _, err = _run_tmux(["respawn-pane", "-k", "-t", pane_target(pane), line])
        if code != 0:
            raise MissionctlError(f"tmux respawn-pane failed: {err.strip()}")
