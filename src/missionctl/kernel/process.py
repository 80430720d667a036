"""PID files and OS process control.

A PID file holds one decimal pid and nothing else. Its presence says nothing
about liveness: every consumer checks the process, and whoever finds it dead
removes the file.
"""
from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Literal, Optional

import psutil

from ..util.fs import atomic_write_text, remove_quietly

logger = logging.getLogger(__name__)

STOP_TIMEOUT_S = 10.0
STOP_TICK_S = 0.1
# After SIGKILL the process is normally gone at once; wait at most this long to confirm.
KILL_CONFIRM_S = 1.0

StopOutcome = Literal["not_running", "terminated", "killed"]


def read_pid(pid_path: Path) -> int:
    try:
        txt = pid_path.read_text(encoding="utf-8").strip()
    except OSError:
        return 0
    return int(txt) if txt.isdigit() else 0


def write_pid(pid_path: Path, pid: int) -> None:
    atomic_write_text(pid_path, f"{int(pid)}")


def _reap_if_child(pid: int) -> bool:
    """Reap `pid` if it is our own exited child; True when it was reaped."""
    try:
        done, _ = os.waitpid(pid, os.WNOHANG)
    except ChildProcessError:
        return False
    return done == pid


def pid_alive(pid: int) -> bool:
    """True while `pid` runs; exited-but-unreaped (zombie) processes count as dead."""
    if pid <= 0:
        return False
    if _reap_if_child(pid):
        return False
    try:
        proc = psutil.Process(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but belongs to someone else.
        return True


def read_live_pid(pid_path: Path) -> int:
    """Return the recorded pid if that process is alive; otherwise drop the stale file and return 0."""
    pid = read_pid(pid_path)
    if pid > 0 and pid_alive(pid):
        return pid
    if pid_path.exists():
        remove_quietly(pid_path)
    return 0


def _wait_for_exit(pid: int, *, timeout_s: float, tick_s: float) -> bool:
    deadline = time.monotonic() + timeout_s
    while True:
        if not pid_alive(pid):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(tick_s)


def stop_process(
    pid_path: Path,
    *,
    timeout_s: float = STOP_TIMEOUT_S,
    tick_s: float = STOP_TICK_S,
) -> StopOutcome:
    """SIGTERM, poll every tick until the deadline, then SIGKILL.

    Idempotent: a missing, unparsable or stale PID file counts as already stopped.
    """
    pid = read_live_pid(pid_path)
    if pid == 0:
        return "not_running"

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        remove_quietly(pid_path)
        return "not_running"
    logger.info("sent SIGTERM", extra={"pid": pid})

    if _wait_for_exit(pid, timeout_s=timeout_s, tick_s=tick_s):
        remove_quietly(pid_path)
        return "terminated"

    logger.warning("process ignored SIGTERM; sending SIGKILL", extra={"pid": pid})
    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    if not _wait_for_exit(pid, timeout_s=KILL_CONFIRM_S, tick_s=min(tick_s, 0.02)):
        logger.error("process survived SIGKILL", extra={"pid": pid})
    remove_quietly(pid_path)
    return "killed"


def spawn_detached(
    command: List[str],
    *,
    log_path: Path,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[Path] = None,
) -> int:
    """Start `command` in its own session with output appended to `log_path`; return its pid."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as log_f:
        p = subprocess.Popen(
            command,
            stdout=log_f,
            stderr=log_f,
            stdin=subprocess.DEVNULL,
            env=env if env is not None else os.environ.copy(),
            start_new_session=True,
            cwd=str(cwd) if cwd is not None else None,
        )
    return int(p.pid)
