from __future__ import annotations

import pytest

from localnotes.filters import filter_notes
from localnotes.markdown import MarkdownRenderer
from localnotes.models import Note

NOTES = [
    Note(id="1", title="Groceries", content="milk and eggs", pinned=True),
    Note(id="2", title="Ideas", content="Buy more MILK"),
    Note(id="3", title="Todo", content="call bank"),
]


def test_filter_matches_title_or_content_case_insensitive():
    assert [n.id for n in filter_notes(NOTES, "  milk ")] == ["1", "2"]
    assert [n.id for n in filter_notes(NOTES, "todo")] == ["3"]
    assert filter_notes(NOTES, "nothing") == []


def test_empty_term_returns_everything_in_order():
    assert [n.id for n in filter_notes(NOTES)] == ["1", "2", "3"]


def test_oldest_mode_reverses_without_touching_input():
    notes = list(NOTES)
    assert [n.id for n in filter_notes(notes, "", "oldest")] == ["3", "2", "1"]
    assert notes == NOTES


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        filter_notes(NOTES, "", "random")


def test_markdown_renders_editor_bullets_as_list():
    html = MarkdownRenderer().render("Shopping\n• milk\n• eggs")
    assert "<li>milk</li>" in html
    assert "<li>eggs</li>" in html


def test_markdown_escapes_raw_html():
    html = MarkdownRenderer().render("<script>alert(1)</script>")
    assert "<script>" not in html


def test_markdown_keeps_line_breaks_and_links_urls():
    html = MarkdownRenderer().render("call mum\nsee https://example.com")
    assert "<br" in html
    assert '<a href="https://example.com">' in html


def test_markdown_blank_body_renders_nothing():
    assert MarkdownRenderer().render("  \n ") == ""
