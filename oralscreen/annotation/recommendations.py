"""Treatment recommendation editor state.

Keys come from two places: labels derived from shapes (pruned as soon as no
shape carries them any more) and custom labels typed by the reviewer (kept
until removed explicitly).
"""

from typing import Dict, Iterable, List, Mapping, Optional

from oralscreen.core.errors import ValidationError
from oralscreen.core.text import is_blank, normalize_label


def _unique(labels: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for label in labels:
        label = normalize_label(label)
        if label and label not in seen:
            seen.append(label)
    return seen


class RecommendationEditor:
    """Per-label treatment text with derived and custom keys."""

    def __init__(
        self,
        recommendations: Optional[Mapping[str, str]] = None,
        derived_labels: Iterable[str] = (),
        custom_labels: Optional[Iterable[str]] = None,
    ):
        self._derived = _unique(derived_labels)
        self._entries: Dict[str, str] = {}
        for label, text in (recommendations or {}).items():
            label = normalize_label(label)
            if label:
                self._entries[label] = text or ""

        if custom_labels is None:
            # Unrecorded: stored keys no shape accounts for were typed in by the reviewer
            self._custom = [label for label in self._entries if label not in self._derived]
        else:
            self._custom = _unique(custom_labels)
            for label in self._custom:
                self._entries.setdefault(label, "")
        stale = [
            label
            for label in self._entries
            if label not in self._derived and label not in self._custom
        ]
        for label in stale:
            del self._entries[label]
        for label in self._derived:
            self._entries.setdefault(label, "")
        self._dirty = bool(stale)

    @property
    def labels(self) -> List[str]:
        return list(self._entries)

    @property
    def derived_labels(self) -> List[str]:
        return list(self._derived)

    @property
    def custom_labels(self) -> List[str]:
        return list(self._custom)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def get(self, label: str) -> str:
        return self._entries.get(normalize_label(label), "")

    def as_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    def has_content(self) -> bool:
        return any(not is_blank(text) for text in self._entries.values())

    def mark_saved(self) -> None:
        self._dirty = False

    def sync(self, labels: Iterable[str]) -> List[str]:
        """Align derived keys with the labels currently carried by shapes.

        Args:
            labels: Problem labels across all shapes of all slots

        Returns:
            Labels whose entries were pruned
        """
        self._derived = _unique(labels)
        removed = [
            label
            for label in self._entries
            if label not in self._derived and label not in self._custom
        ]
        for label in removed:
            del self._entries[label]
        for label in self._derived:
            self._entries.setdefault(label, "")
        if removed:
            self._dirty = True
        return removed

    def set(self, label: str, text: str) -> None:
        label = normalize_label(label)
        if label not in self._entries:
            raise ValidationError(f"No recommendation entry for label: {label!r}")
        if self._entries[label] != text:
            self._entries[label] = text
            self._dirty = True

    def add_custom_label(self, label: str) -> bool:
        """Add a reviewer-defined label. Returns False if it already exists."""
        label = normalize_label(label)
        if not label:
            raise ValidationError("Custom label must not be empty")
        if label in self._entries:
            return False
        self._custom.append(label)
        self._entries[label] = ""
        self._dirty = True
        return True

    def remove_custom_label(self, label: str) -> None:
        label = normalize_label(label)
        if label not in self._custom:
            raise ValidationError(f"Not a custom label: {label!r}")
        self._custom.remove(label)
        if label not in self._derived:
            del self._entries[label]
        self._dirty = True
