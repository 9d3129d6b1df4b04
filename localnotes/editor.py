"""Editor-side helpers: the save action, bullet toggling and autosave."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from .models import Note, NoteCreate
from .store import NoteStore

log = logging.getLogger(__name__)

BULLET = "•"


def _as_note(draft: Note | Mapping[str, Any]) -> Note:
    return draft if isinstance(draft, Note) else Note.model_validate(draft)


def save_draft(store: NoteStore, draft: Note | Mapping[str, Any]) -> Note | None:
    """Save what the editor holds. Blank drafts are not saved.

    A draft without an id becomes a new note. Otherwise only the fields the
    draft carries are sent to ``store.update``, so an untouched image survives.
    """
    draft = _as_note(draft)
    title = draft.title.strip()
    content = draft.content.strip()
    if not title and not content:
        return None

    if not draft.id:
        return store.create(
            NoteCreate(
                title=title,
                content=content,
                pinned=draft.pinned,
                color=draft.color,
                image=draft.image,
            )
        )
    trimmed = {"title": title, "content": content}
    changes = {name: value for name, value in trimmed.items() if name in draft.model_fields_set}
    return store.update(draft.model_copy(update=changes))


def toggle_bullets(text: str, start: int, end: int) -> tuple[str, int, int]:
    """Add or remove ``• `` on every line the selection touches.

    Returns the new text and a selection covering the rewritten lines.
    """
    if not text:
        return text, start, end

    sel_end = end if end > start else start
    line_start = text.rfind("\n", 0, start) + 1
    next_newline = text.find("\n", sel_end)
    line_end = len(text) if next_newline == -1 else next_newline

    lines = text[line_start:line_end].split("\n")
    filled = [line.lstrip() for line in lines if line.strip()]
    all_bulleted = all(line.startswith(BULLET) for line in filled)

    new_lines: list[str] = []
    for line in lines:
        trimmed = line.lstrip()
        if not trimmed:
            new_lines.append(line)
        elif all_bulleted:
            new_lines.append(trimmed[len(BULLET):].lstrip())
        elif trimmed.startswith(BULLET):
            new_lines.append(line)
        else:
            new_lines.append(f"{BULLET} {trimmed}")

    selection = "\n".join(new_lines)
    new_text = text[:line_start] + selection + text[line_end:]
    return new_text, line_start, line_start + len(selection)


class AutoSaver:
    """Coalesce rapid edits of one open editor into a single save.

    ``push`` records the newest draft and restarts the quiet period; ``poll``
    saves once ``delay`` seconds pass without a push. A note created by an
    autosave keeps its id for the rest of the editing session, so later saves
    update it instead of creating duplicates.
    """

    def __init__(self, store: NoteStore, delay: float = 0.6, clock: Callable[[], float] = time.monotonic) -> None:
        self._store = store
        self._delay = delay
        self._clock = clock
        self._pending: Note | None = None
        self._last_push = 0.0
        self._created_id = ""

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def due_in(self) -> float:
        """Seconds until the pending draft is due, 0 when it already is."""
        if self._pending is None:
            return 0.0
        return max(0.0, self._delay - (self._clock() - self._last_push))

    def push(self, draft: Note | Mapping[str, Any]) -> None:
        draft = _as_note(draft)
        if self._pending is not None and draft.id and self._pending.id and draft.id != self._pending.id:
            self.flush()
        self._pending = draft
        self._last_push = self._clock()

    def poll(self) -> Note | None:
        if self._pending is None or self._clock() - self._last_push < self._delay:
            return None
        return self.flush()

    def flush(self) -> Note | None:
        draft, self._pending = self._pending, None
        if draft is None:
            return None
        if not draft.id and self._created_id:
            draft = draft.model_copy(update={"id": self._created_id})
        saved = save_draft(self._store, draft)
        if saved is not None and not draft.id:
            self._created_id = saved.id
            log.debug("Autosave created note %s", saved.id)
        return saved
