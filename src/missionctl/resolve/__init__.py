from __future__ import annotations

from .engine import ResolveResult, Resolver, filter_by_substring_match, matches_sequential_substrings, resolve
from .picker import fzf_picker

__all__ = [
    "ResolveResult",
    "Resolver",
    "filter_by_substring_match",
    "fzf_picker",
    "matches_sequential_substrings",
    "resolve",
]
