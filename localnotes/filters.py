from __future__ import annotations

from collections.abc import Iterable

from .models import Note

SORT_MODES = ("newest", "oldest")


def filter_notes(notes: Iterable[Note], term: str = "", mode: str = "newest") -> list[Note]:
    if mode not in SORT_MODES:
        raise ValueError(f"Unknown sort mode: {mode!r}")
    t = (term or "").strip().lower()
    result = [n for n in notes if not t or t in n.title.lower() or t in n.content.lower()]
    if mode == "oldest":
        result.reverse()
    return result
