from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_utc_iso(ts: str) -> Optional[datetime]:
    s = (ts or "").strip()
    if not s:
        return None
    try:
        if s.endswith("Z"):
            s = s[: -len("Z")] + "+00:00"
        dt = datetime.fromisoformat(s)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except ValueError:
        return None


def format_local(ts: str) -> str:
    """Render a stored timestamp as local `YYYY-MM-DD HH:MM`, or `--` when unknown."""
    dt = parse_utc_iso(ts)
    if dt is None:
        return "--"
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")
