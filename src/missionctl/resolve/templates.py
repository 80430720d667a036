from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from .engine import Resolver

Template = Tuple[str, str]


class TemplateResolver(Resolver):
    """Named templates from settings.yaml (`templates: {name: repo}`)."""

    prompt = "Select template: "
    headers = ("TEMPLATE", "REPO")

    def __init__(self, templates: Dict[str, str]) -> None:
        self.templates = dict(templates)

    def try_canonical(self, text: str) -> Optional[Template]:
        if text in self.templates:
            return (text, self.templates[text])
        return None

    def list_items(self) -> List[Template]:
        return sorted(self.templates.items())

    def extract_search_text(self, item: Template) -> str:
        return f"{item[0]} {item[1]}"

    def format_row(self, item: Template) -> List[str]:
        return [item[0], item[1]]
