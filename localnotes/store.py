from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import AfterValidator, TypeAdapter, ValidationError

from .config import DEFAULT_STORAGE_KEY, Settings
from .models import Note, NoteCreate, clean_title
from .storage import KeyValueStorage, SqliteStorage, StorageError

log = logging.getLogger(__name__)

Subscriber = Callable[[list[Note]], None]


def _stored(note: Note) -> Note:
    # a stored note always went through create, so it has an id and both stamps
    if not (note.id and note.created_at and note.updated_at):
        raise ValueError("stored note lacks id, createdAt or updatedAt")
    return note


_NOTE_LIST = TypeAdapter(list[Annotated[Note, AfterValidator(_stored)]])
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)
_MERGED_FIELDS = ("title", "content", "pinned", "color", "image")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _OLDEST
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def sort_notes(notes: Iterable[Note]) -> list[Note]:
    """Pinned first, then most recently updated. Equal keys keep their order."""
    return sorted(notes, key=lambda n: (n.pinned, parse_timestamp(n.updated_at)), reverse=True)


def reconcile(existing: Note, incoming: Note, updated_at: str) -> Note:
    """Merge an edit over the stored note, field by field.

    Only fields the edit actually carries are applied. An edit that never
    mentions ``image`` keeps the attachment; ``image=None`` removes it.
    ``id`` and ``created_at`` always come from the stored note.
    """
    changes: dict[str, Any] = {}
    for name in _MERGED_FIELDS:
        if name in incoming.model_fields_set:
            changes[name] = getattr(incoming, name)
    changes["title"] = clean_title(changes.get("title", existing.title))
    changes["updated_at"] = updated_at
    return existing.model_copy(update=changes)


def _unique(notes: list[Note]) -> list[Note]:
    seen: set[str] = set()
    out: list[Note] = []
    for note in notes:
        if note.id in seen:
            log.warning("Dropping duplicate stored note %s", note.id)
            continue
        seen.add(note.id)
        out.append(note)
    return out


class NoteStore:
    """Ordered notes kept in memory and written through to key-value storage.

    Every mutation re-sorts the list, writes the whole list as a JSON array
    under one key and then calls each subscriber with the new list before
    returning. Mutations hold a reentrant lock, so callers on different
    threads commit one after another. Storage failures are logged, never raised.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = DEFAULT_STORAGE_KEY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._key = key
        self._clock = clock or _utcnow
        # web handlers run in a threadpool; mutations must not interleave
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        self._notes: list[Note] = self._load()

    @property
    def key(self) -> str:
        return self._key

    @property
    def notes(self) -> list[Note]:
        return list(self._notes)

    def get(self, note_id: str) -> Note | None:
        return next((n for n in self._notes if n.id == note_id), None)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback`` now with the current list and after every change.

        Returns a function that cancels the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)
            self._deliver(callback, self._notes)

        def unsubscribe() -> None:
            with self._lock:
                for i, registered in enumerate(self._subscribers):
                    if registered is callback:
                        del self._subscribers[i]
                        return

        return unsubscribe

    def create(self, payload: NoteCreate | Mapping[str, Any]) -> Note:
        if not isinstance(payload, NoteCreate):
            payload = NoteCreate.model_validate(payload)
        with self._lock:
            now = self._now()
            note = Note(
                id=str(uuid.uuid4()),
                title=clean_title(payload.title),
                content=payload.content,
                created_at=now,
                updated_at=now,
                pinned=payload.pinned,
                color=payload.color,
                image=payload.image,
            )
            self._commit([note, *self._notes])
        log.info("Created note %s", note.id)
        return note

    def update(self, note: Note | Mapping[str, Any]) -> Note:
        incoming = note if isinstance(note, Note) else Note.model_validate(note)
        with self._lock:
            now = self._now()
            existing = self.get(incoming.id) if incoming.id else None
            if existing is None:
                # a dialog can outlive the note it edits; nothing to write
                log.debug("Ignoring update for unknown note %r", incoming.id)
                return incoming.model_copy(update={"updated_at": now})

            merged = reconcile(existing, incoming, now)
            self._commit([merged if n.id == merged.id else n for n in self._notes])
        log.info("Updated note %s", merged.id)
        return merged

    def delete(self, note_id: str) -> None:
        with self._lock:
            remaining = [n for n in self._notes if n.id != note_id]
            if len(remaining) == len(self._notes):
                log.debug("Ignoring delete for unknown note %r", note_id)
                return
            self._commit(remaining)
        log.info("Deleted note %s", note_id)

    def toggle_pin(self, note_id: str) -> None:
        with self._lock:
            target = self.get(note_id)
            if target is None:
                log.debug("Ignoring pin toggle for unknown note %r", note_id)
                return
            # pinning is not an edit: updated_at stays as is
            flipped = target.model_copy(update={"pinned": not target.pinned})
            self._commit([flipped if n.id == note_id else n for n in self._notes])
        log.info("Note %s %s", note_id, "pinned" if flipped.pinned else "unpinned")

    # ---- internals ----

    def _now(self) -> str:
        return format_timestamp(self._clock())

    def _load(self) -> list[Note]:
        try:
            raw = self._storage.get_item(self._key)
        except (StorageError, OSError):
            log.exception("Failed to read notes from storage key %r", self._key)
            return []
        if not raw:
            return []
        try:
            loaded = _NOTE_LIST.validate_json(raw)
        except ValidationError as e:
            log.error("Discarding unreadable notes under %r: %s", self._key, e)
            return []
        notes = _unique(sort_notes(loaded))
        log.debug("Loaded %d notes from %r", len(notes), self._key)
        return notes

    def _commit(self, notes: list[Note]) -> None:
        self._notes = sort_notes(notes)
        self._persist()
        for callback in list(self._subscribers):
            self._deliver(callback, self._notes)

    def _persist(self) -> None:
        try:
            self._storage.set_item(self._key, _NOTE_LIST.dump_json(self._notes, by_alias=True).decode("utf-8"))
        except (StorageError, OSError):
            log.exception("Failed to save %d notes to storage key %r", len(self._notes), self._key)

    @staticmethod
    def _deliver(callback: Subscriber, notes: list[Note]) -> None:
        try:
            callback(list(notes))
        except Exception:
            log.exception("Note subscriber %r failed", callback)


def open_store(settings: Settings, storage: KeyValueStorage | None = None) -> NoteStore:
    if storage is None:
        storage = SqliteStorage(settings.db_path, max_bytes=settings.quota_bytes)
    return NoteStore(storage, key=settings.storage_key)
