"""Seed heuristic that turns a free-text book concept into step 1 data.

This is a best-effort starting point for the planning step, not a parser:
it picks out listed themes, guesses a premise line, and guesses whether the
book is a picture book. The agent is expected to overwrite all of it.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

MAX_THEMES = 5

_THEME_LIST_PATTERNS = (
    re.compile(r"themes?:?\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"topics?:?\s*([^\n]+)", re.IGNORECASE),
)
_THEME_KEYWORDS = re.compile(
    r"\b(adventure|family|friendship|learning|exploration|discovery)\b", re.IGNORECASE
)
_PICTURE_BOOK_MARKERS = ("picture book", "illustration", "illustrated")
_YOUNG_AGE_MARKERS = ("3-", "4-", "5-")

PICTURE_BOOK_STYLE = "Children's picture book style with vibrant illustrations"
DEFAULT_STYLE = "Family-friendly storytelling style"
DEFAULT_PREMISE = "Story concept to be developed"


@dataclass
class ConceptSeed:
    content: str
    premise: str
    themes: list[str] = field(default_factory=list)
    style_guide: str = DEFAULT_STYLE
    is_picture_book: bool = False

    def to_step_data(self, is_picture_book: Optional[bool]) -> dict[str, Any]:
        return {
            "content": self.content,
            "premise": self.premise,
            "themes": self.themes,
            "styleBible": self.style_guide,
            "isPictureBook": is_picture_book,
        }


def extract_themes(concept: str) -> list[str]:
    themes: list[str] = []
    for pattern in _THEME_LIST_PATTERNS:
        match = pattern.search(concept)
        if match:
            themes.extend(t.strip() for t in re.split(r"[,;]", match.group(1)) if t.strip())
    themes.extend(m.group(1) for m in _THEME_KEYWORDS.finditer(concept))

    seen = set()
    unique = []
    for theme in themes:
        if theme.lower() in seen:
            continue
        seen.add(theme.lower())
        unique.append(theme)
    return unique[:MAX_THEMES]


def extract_premise(concept: str) -> str:
    lines = [line for line in concept.split("\n") if line.strip()]
    for line in lines:
        if not line.startswith("#") and len(line) > 50:
            return line.strip()
    if not lines:
        return DEFAULT_PREMISE
    return " ".join(lines[:3])[:200] + "..."


def detect_picture_book(concept: str, target_age: Optional[str] = None) -> bool:
    lowered = concept.lower()
    if any(marker in lowered for marker in _PICTURE_BOOK_MARKERS):
        return True
    return bool(target_age) and any(marker in target_age for marker in _YOUNG_AGE_MARKERS)


def parse_concept(concept: str, target_age: Optional[str] = None) -> ConceptSeed:
    """Derive a step 1 seed from a free-text concept."""
    style = PICTURE_BOOK_STYLE if ("style" in concept or "picture book" in concept) else DEFAULT_STYLE
    return ConceptSeed(
        content=concept,
        premise=extract_premise(concept),
        themes=extract_themes(concept),
        style_guide=style,
        is_picture_book=detect_picture_book(concept, target_age),
    )
