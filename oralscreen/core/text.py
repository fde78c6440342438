"""Text processing utilities for oralscreen."""

import re
from typing import Callable, List, Optional

from .constants import LABEL_ALIASES


def is_blank(text: Optional[str]) -> bool:
    """True for None, empty, or whitespace-only text."""
    return text is None or not text.strip()


def normalize_label(label: str) -> str:
    """Normalize a problem label for lookups.

    Strips surrounding whitespace, collapses inner runs of spaces and maps
    known alternate spellings onto the canonical label.

    Args:
        label: Label as typed by an operator or read from storage

    Returns:
        Canonical label string (may be empty)
    """
    if not label:
        return ""
    label = re.sub(r"\s+", " ", label.strip())
    return LABEL_ALIASES.get(label, label)


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    """Greedy word wrap against a width measured by the caller.

    Explicit newlines are kept as paragraph breaks. A single word wider than
    max_width is placed on its own line rather than split.

    Args:
        text: Text to wrap
        max_width: Available width, in the same unit as measure()
        measure: Function returning the rendered width of a string

    Returns:
        List of lines (empty list for blank text)
    """
    if is_blank(text):
        return []

    lines: List[str] = []
    for paragraph in text.strip().split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue

        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if measure(candidate) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)

    return lines
