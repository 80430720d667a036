from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..errors import MissionctlError, PickerUnavailableError
from ..paths import inside_managed_tmux
from ..runners.tmux import inside_tmux, popup_command
from ..util.table import render_table

POPUP_ENV_VAR = "MISSIONCTL_IN_POPUP"
HEADER_INDEX = "-1"


def build_fzf_input(rows: Sequence[Sequence[str]], headers: Sequence[str]) -> str:
    """Table lines prefixed with a hidden row index; the header line gets -1."""
    lines = render_table(headers, rows)
    out = [f"{HEADER_INDEX}\t{lines[0]}"]
    out.extend(f"{i}\t{line}" for i, line in enumerate(lines[1:]))
    return "\n".join(out) + "\n"


def build_fzf_args(binary: str, *, prompt: str, multi: bool, query: str) -> List[str]:
    args = [binary, "--ansi", "--header-lines", "1", "--with-nth", "2..", "--prompt", prompt]
    if multi:
        args.append("--multi")
    if query:
        args.extend(["--query", query])
    return args


def parse_fzf_output(out: str) -> List[int]:
    indices: List[int] = []
    for line in (out or "").splitlines():
        head = line.split("\t", 1)[0].strip()
        if head.isdigit():
            indices.append(int(head))
    return indices


def _needs_popup() -> bool:
    if os.environ.get(POPUP_ENV_VAR, "").strip() == "1":
        return False
    return inside_managed_tmux() and inside_tmux() and not sys.stdin.isatty()


def _run_in_popup(argv: List[str], fzf_input: str) -> Tuple[int, str]:
    with tempfile.TemporaryDirectory(prefix="missionctl-pick-") as d:
        in_path = Path(d) / "in"
        out_path = Path(d) / "out"
        in_path.write_text(fzf_input, encoding="utf-8")
        line = "{} < {} > {}".format(
            " ".join(shlex.quote(a) for a in argv),
            shlex.quote(str(in_path)),
            shlex.quote(str(out_path)),
        )
        env = os.environ.copy()
        env[POPUP_ENV_VAR] = "1"
        p = subprocess.run(popup_command(line), env=env, check=False)
        out = out_path.read_text(encoding="utf-8") if out_path.exists() else ""
    # display-popup does not reliably report fzf's status; no output means no selection.
    return (p.returncode if out.strip() else 1), out


def fzf_picker(
    rows: Sequence[Sequence[str]],
    *,
    headers: Sequence[str],
    prompt: str = "> ",
    multi: bool = False,
    query: str = "",
) -> Optional[List[int]]:
    """Show rows in fzf; return the selected row indices, or None when the user cancels."""
    if not rows:
        return []
    binary = shutil.which("fzf")
    if not binary:
        raise PickerUnavailableError("'fzf' binary not found in PATH", hint="pass arguments instead")

    argv = build_fzf_args(binary, prompt=prompt, multi=multi, query=query)
    fzf_input = build_fzf_input(rows, headers)
    if _needs_popup():
        code, out = _run_in_popup(argv, fzf_input)
    else:
        try:
            p = subprocess.run(argv, input=fzf_input, stdout=subprocess.PIPE, text=True, check=False)
        except OSError as e:
            raise MissionctlError(f"fzf selection failed: {e}") from e
        code, out = p.returncode, p.stdout or ""
    # 1: no match, 130: interrupted. Both mean nothing was chosen.
    if code != 0:
        return None
    return parse_fzf_output(out)
