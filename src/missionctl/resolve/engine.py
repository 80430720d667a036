"""Turn free-form command arguments into a set of target items.

1. Empty input: pick from every item.
2. Canonical input (an id, a full name): exactly that item, or an error.
3. Otherwise the words are search terms matched in order against each item.
4. One match is taken as-is; zero or several open the picker with the input as query.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

# (rows, headers=..., prompt=..., multi=..., query=...) -> selected row indices, or None on cancel.
Picker = Callable[..., Optional[List[int]]]


@dataclass
class ResolveResult:
    items: List[Any] = field(default_factory=list)
    was_cancelled: bool = False


class Resolver:
    """Describes one kind of resolvable item. Subclasses fill in the hooks."""

    prompt: str = "> "
    headers: Sequence[str] = ()
    multi_select: bool = False

    def try_canonical(self, text: str) -> Optional[Any]:
        """Return the item `text` names canonically, None if it is not canonical.

        Raise when `text` looks canonical but names nothing: such input must
        never fall through to searching.
        """
        return None

    def list_items(self) -> List[Any]:
        raise NotImplementedError

    def extract_search_text(self, item: Any) -> str:
        raise NotImplementedError

    def format_row(self, item: Any) -> List[str]:
        raise NotImplementedError


def matches_sequential_substrings(text: str, terms: Sequence[str]) -> bool:
    """True if every term occurs in `text` (case-insensitively) after the previous term's match."""
    lower = (text or "").lower()
    pos = 0
    for term in terms:
        t = term.lower()
        idx = lower.find(t, pos)
        if idx < 0:
            return False
        pos = idx + len(t)
    return True


def filter_by_substring_match(items: Sequence[Any], terms: Sequence[str], extract: Callable[[Any], str]) -> List[Any]:
    if not terms:
        return list(items)
    return [item for item in items if matches_sequential_substrings(extract(item), terms)]


def _pick(resolver: Resolver, picker: Picker, query: str) -> ResolveResult:
    items = resolver.list_items()
    if not items:
        return ResolveResult()
    indices = picker(
        [resolver.format_row(item) for item in items],
        headers=list(resolver.headers),
        prompt=resolver.prompt,
        multi=resolver.multi_select,
        query=query,
    )
    if indices is None:
        return ResolveResult(was_cancelled=True)
    return ResolveResult(items=[items[i] for i in indices if 0 <= i < len(items)])


def resolve(text: str, resolver: Resolver, *, picker: Picker) -> ResolveResult:
    """Callers join positional arguments with spaces before calling."""
    text = (text or "").strip()
    if not text:
        return _pick(resolver, picker, "")

    item = resolver.try_canonical(text)
    if item is not None:
        return ResolveResult(items=[item])

    items = resolver.list_items()
    if not items:
        return ResolveResult()
    matches = filter_by_substring_match(items, text.split(), resolver.extract_search_text)
    if len(matches) == 1:
        return ResolveResult(items=matches)
    return _pick(resolver, picker, text)
