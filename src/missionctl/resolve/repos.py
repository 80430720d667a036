from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from ..errors import MissionctlError
from .engine import Resolver

DEFAULT_HOST = "github.com"


def normalize_repo_ref(text: str) -> Optional[str]:
    """`owner/repo`, `host/owner/repo` or an https URL -> `host/owner/repo`; None if not repo-shaped."""
    s = str(text or "").strip()
    if not s or any(c.isspace() for c in s):
        return None
    for prefix in ("https://", "http://"):
        if s.startswith(prefix):
            s = s[len(prefix):]
    s = s.rstrip("/")
    if s.endswith(".git"):
        s = s[: -len(".git")]
    parts = [p for p in s.split("/") if p]
    if len(parts) == 2:
        parts = [DEFAULT_HOST] + parts
    if len(parts) != 3:
        return None
    return "/".join(parts)


def list_repos(repos_dir: Path) -> List[str]:
    """Library checkouts laid out as repos/<host>/<owner>/<repo>."""
    if not repos_dir.is_dir():
        return []
    out = []
    for repo in repos_dir.glob("*/*/*"):
        if repo.is_dir():
            out.append(repo.relative_to(repos_dir).as_posix())
    return sorted(out)


class RepoResolver(Resolver):
    prompt = "Select repo: "
    headers = ("REPO",)

    def __init__(self, repos_dir: Path) -> None:
        self.repos_dir = repos_dir

    def try_canonical(self, text: str) -> Optional[str]:
        name = normalize_repo_ref(text)
        if name is None:
            return None
        if not (self.repos_dir / name).is_dir():
            raise MissionctlError(f"repository not in library: {name}", hint=f"clone it into {self.repos_dir / name}")
        return name

    def list_items(self) -> List[str]:
        return list_repos(self.repos_dir)

    def extract_search_text(self, item: str) -> str:
        return item

    def format_row(self, item: str) -> List[str]:
        return [item]
