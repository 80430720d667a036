from __future__ import annotations

import re
from typing import List, Sequence

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")

_COLORS = {
    "RUNNING": "\x1b[32m",
    "STOPPED": "\x1b[33m",
    "ARCHIVED": "\x1b[2m",
}
_RESET = "\x1b[0m"


def strip_ansi(s: str) -> str:
    return _ANSI_RE.sub("", s or "")


def colorize_state(state: str) -> str:
    color = _COLORS.get(state)
    if not color:
        return state
    return f"{color}{state}{_RESET}"


def truncate(s: str, max_len: int) -> str:
    s = " ".join((s or "").split())
    if max_len <= 0 or len(s) <= max_len:
        return s
    if max_len <= 3:
        return s[:max_len]
    return s[: max_len - 3] + "..."


def render_table(headers: Sequence[str], rows: Sequence[Sequence[str]], *, gap: int = 3) -> List[str]:
    """Left-aligned columns; widths ignore ANSI color codes. Header is the first line."""
    ncols = max([len(headers)] + [len(r) for r in rows]) if (headers or rows) else 0
    widths = [0] * ncols
    for line in [list(headers)] + [list(r) for r in rows]:
        for i, cell in enumerate(line):
            widths[i] = max(widths[i], len(strip_ansi(str(cell))))

    out: List[str] = []
    for line in [list(headers)] + [list(r) for r in rows]:
        cells = []
        for i in range(ncols):
            cell = str(line[i]) if i < len(line) else ""
            pad = widths[i] - len(strip_ansi(cell))
            cells.append(cell + (" " * pad if i < ncols - 1 else ""))
        out.append((" " * gap).join(cells).rstrip())
    return out
