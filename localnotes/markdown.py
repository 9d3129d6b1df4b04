from __future__ import annotations

import re

from markdown_it import MarkdownIt
from mdit_py_plugins.tasklists import tasklists_plugin

# the editor's list button writes "• item"; markdown wants "- item"
_BULLET_LINE = re.compile(r"^([ \t]*)•[ \t]?", re.MULTILINE)


def bullets_to_markdown(text: str) -> str:
    return _BULLET_LINE.sub(r"\1- ", text)


class MarkdownRenderer:
    """Renders note bodies. Sticky notes are typed line by line, so single
    newlines stay line breaks and bare URLs become links."""

    def __init__(self) -> None:
        self._md = (
            MarkdownIt("commonmark", {"html": False, "linkify": True, "typographer": True, "breaks": True})
            .enable(["linkify", "strikethrough"])
            .use(tasklists_plugin, enabled=True)
        )

    def render(self, text: str) -> str:
        if not text or not text.strip():
            return ""
        return self._md.render(bullets_to_markdown(text))
