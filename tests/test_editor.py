from __future__ import annotations

from localnotes.editor import AutoSaver, save_draft, toggle_bullets
from localnotes.storage import MemoryStorage
from localnotes.store import NoteStore


class FakeClock:
    def __init__(self) -> None:
        self.t = 0.0

    def __call__(self) -> float:
        return self.t


def test_save_draft_skips_blank_drafts():
    store = NoteStore(MemoryStorage())
    assert save_draft(store, {"title": "  ", "content": "\n"}) is None
    assert store.notes == []


def test_save_draft_creates_then_updates():
    store = NoteStore(MemoryStorage())
    created = save_draft(store, {"title": "  Groceries ", "content": " milk ", "color": "yellow", "pinned": True})
    assert created.title == "Groceries"
    assert created.content == "milk"
    assert created.color == "yellow"
    assert created.pinned is True

    updated = save_draft(store, {"id": created.id, "title": "", "content": "milk, eggs"})
    assert updated.id == created.id
    assert updated.title == "Untitled"
    assert [n.content for n in store.notes] == ["milk, eggs"]


def test_save_draft_preserves_image_unless_draft_sets_it():
    store = NoteStore(MemoryStorage())
    note = save_draft(store, {"title": "pic", "image": "data:image/png;base64,AAA"})

    kept = save_draft(store, {"id": note.id, "title": "pic", "content": "caption"})
    assert kept.image == "data:image/png;base64,AAA"

    cleared = save_draft(store, {"id": note.id, "title": "pic", "image": None})
    assert cleared.image is None


def test_toggle_bullets_adds_and_removes():
    text, start, end = toggle_bullets("a\nb\nc", 0, 3)
    assert text == "• a\n• b\nc"
    assert (start, end) == (0, 7)

    text, start, end = toggle_bullets(text, start, end)
    assert text == "a\nb\nc"
    assert (start, end) == (0, 3)


def test_toggle_bullets_cursor_only_touches_its_line():
    assert toggle_bullets("a\nb\nc", 2, 2) == ("a\n• b\nc", 2, 5)


def test_toggle_bullets_mixed_selection_bullets_the_rest():
    text, _, _ = toggle_bullets("• a\nb", 0, 5)
    assert text == "• a\n• b"


def test_toggle_bullets_leaves_blank_lines_alone():
    text, _, _ = toggle_bullets("a\n\n  b", 0, 6)
    assert text == "• a\n\n• b"


def test_toggle_bullets_empty_text():
    assert toggle_bullets("", 0, 0) == ("", 0, 0)


def test_autosaver_coalesces_rapid_edits():
    store = NoteStore(MemoryStorage())
    commits: list[int] = []
    store.subscribe(lambda notes: commits.append(len(notes)))
    clock = FakeClock()
    saver = AutoSaver(store, delay=0.6, clock=clock)

    saver.push({"title": "a"})
    clock.t = 0.3
    saver.push({"title": "ab"})
    clock.t = 0.8
    assert saver.poll() is None
    assert saver.pending

    clock.t = 1.0
    created = saver.poll()
    assert created.title == "ab"
    assert not saver.pending
    assert saver.poll() is None

    saver.push({"title": "abc"})
    clock.t = 2.0
    updated = saver.poll()
    assert updated.id == created.id
    assert [n.title for n in store.notes] == ["abc"]
    assert commits == [0, 1, 1]


def test_autosaver_flushes_previous_note_when_switching():
    store = NoteStore(MemoryStorage())
    first = store.create({"title": "one"})
    second = store.create({"title": "two"})
    clock = FakeClock()
    saver = AutoSaver(store, clock=clock)

    saver.push({"id": first.id, "title": "one!"})
    saver.push({"id": second.id, "title": "two!"})
    assert store.get(first.id).title == "one!"
    assert store.get(second.id).title == "two"

    saver.flush()
    assert store.get(second.id).title == "two!"


def test_save_draft_title_only_keeps_content():
    store = NoteStore(MemoryStorage())
    note = store.create({"title": "t", "content": "body"})
    updated = save_draft(store, {"id": note.id, "title": " renamed "})
    assert updated.title == "renamed"
    assert updated.content == "body"


def test_autosaver_due_in_counts_down_from_last_push():
    store = NoteStore(MemoryStorage())
    clock = FakeClock()
    saver = AutoSaver(store, delay=0.6, clock=clock)
    assert saver.due_in() == 0.0

    saver.push({"title": "draft"})
    clock.t = 0.2
    assert abs(saver.due_in() - 0.4) < 1e-9
    clock.t = 5.0
    assert saver.due_in() == 0.0
    saver.poll()
    assert saver.due_in() == 0.0
