from __future__ import annotations

import json
from pathlib import Path

from localnotes.cli import main
from localnotes.config import load_settings
from localnotes.store import open_store


def test_export_writes_stored_notes(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "notes.db"
    monkeypatch.setenv("LOCALNOTES_DB_PATH", str(db_path))
    store = open_store(load_settings())
    note = store.create({"title": "exported", "content": "body"})

    out = tmp_path / "out.json"
    main(["export", "-o", str(out)])

    data = json.loads(out.read_text(encoding="utf-8"))
    assert data == [note.model_dump(by_alias=True)]


def test_export_prints_to_stdout(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setenv("LOCALNOTES_DB_PATH", str(tmp_path / "empty.db"))
    main(["export"])
    assert json.loads(capsys.readouterr().out) == []
