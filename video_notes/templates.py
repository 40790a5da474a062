from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path

from .constants import DEFAULT_TEMPLATE_ID, TEMPLATES_DIR
from .core.types import StaticPrompt, Template, VideoMetadata
from .prompts.default import DEFAULT_TEMPLATES


_DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "programming": (
        "programming",
        "coding",
        "python",
        "javascript",
        "typescript",
        "react",
        "api",
        "developer",
        "code",
        "software",
    ),
    "diy": ("diy", "woodworking", "repair", "build", "craft", "home improvement", "install"),
    "academic": ("lecture", "university", "calculus", "physics", "chemistry", "biology", "math", "theorem"),
    "fitness": ("workout", "fitness", "exercise", "yoga", "training", "strength", "cardio"),
}


def detect_domain(metadata: VideoMetadata) -> str:
    """Guess the tutorial domain from title, tags and description; ``general`` when unsure."""
    haystack = " ".join([metadata.title, " ".join(metadata.tags), metadata.description]).lower()
    scores: dict[str, int] = {}
    for domain, keywords in _DOMAIN_KEYWORDS.items():
        hits = sum(1 for kw in keywords if re.search(rf"\b{re.escape(kw)}\b", haystack))
        if hits:
            scores[domain] = hits
    if not scores:
        return "general"
    return max(scores.items(), key=lambda item: item[1])[0]


class TemplateLoader:
    """Resolve templates by id; ``<id>-prompt.txt`` in ``base`` overrides a built-in prompt."""

    def __init__(self, base: Path | None = None):
        self.base = Path(base or TEMPLATES_DIR)

    def _load_optional(self, name: str) -> str | None:
        path = self.base / name
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    @lru_cache(maxsize=None)
    def get(self, template_id: str | None = None) -> Template:
        template_id = (template_id or DEFAULT_TEMPLATE_ID).strip().lower()
        override = self._load_optional(f"{template_id}-prompt.txt")
        builtin = DEFAULT_TEMPLATES.get(template_id)
        if override is not None:
            name = builtin.name if builtin else template_id.replace("-", " ").title()
            return Template(
                id=template_id,
                name=name,
                prompt=StaticPrompt(override.strip()),
                description=builtin.description if builtin else f"Custom template from {self.base}",
            )
        if builtin is None:
            raise KeyError(f"Unknown template: {template_id}")
        return builtin

    def available(self) -> list[Template]:
        ids = list(DEFAULT_TEMPLATES)
        if self.base.is_dir():
            for path in sorted(self.base.glob("*-prompt.txt")):
                template_id = path.name[: -len("-prompt.txt")]
                if template_id not in ids:
                    ids.append(template_id)
        return [self.get(template_id) for template_id in ids]
