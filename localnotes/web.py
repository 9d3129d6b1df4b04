from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, Request, Response, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from markupsafe import Markup
from pydantic import ValidationError

from . import __version__
from .config import Settings, load_settings
from .editor import AutoSaver, save_draft, toggle_bullets
from .filters import SORT_MODES, filter_notes
from .markdown import MarkdownRenderer
from .models import NOTE_COLORS, BulletEdit, Note, NoteCreate, NoteEdit
from .storage import KeyValueStorage, SqliteStorage, StorageError
from .store import open_store

log = logging.getLogger(__name__)

THEME_KEY = "theme"


async def _image_data_uri(upload: UploadFile | None) -> str | None:
    if upload is None or not upload.filename:
        return None
    data = await upload.read()
    if not data:
        return None
    mime = upload.content_type or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def _draft(fields: dict) -> Note:
    try:
        return Note.model_validate(fields)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False)) from e


def create_app(settings: Settings | None = None, storage: KeyValueStorage | None = None) -> FastAPI:
    settings = settings or load_settings()
    if storage is None:
        storage = SqliteStorage(settings.db_path, max_bytes=settings.quota_bytes)
    store = open_store(settings, storage)

    base_dir = Path(__file__).parent
    templates = Jinja2Templates(directory=str(base_dir / "templates"))
    md = MarkdownRenderer()

    app = FastAPI(title="localnotes", version=__version__)
    app.state.settings = settings
    app.state.storage = storage
    app.state.store = store
    # one autosaver per note being edited, driven by the event loop
    autosavers: dict[str, AutoSaver] = {}
    app.state.autosavers = autosavers

    app.mount("/static", StaticFiles(directory=str(base_dir / "static")), name="static")

    def _theme() -> str:
        try:
            return "dark" if storage.get_item(THEME_KEY) == "dark" else "light"
        except StorageError:
            log.exception("Failed to read theme preference")
            return "light"

    def _sort_mode(sort: str | None) -> str:
        mode = sort or "newest"
        if mode not in SORT_MODES:
            raise HTTPException(status_code=422, detail=f"Unknown sort mode: {mode}")
        return mode

    def _card(note: Note) -> dict:
        view = note.model_dump()
        view["content_html"] = Markup(md.render(note.content))  # renderer disables raw HTML
        return view

    def _require(note_id: str) -> Note:
        note = store.get(note_id)
        if note is None:
            raise HTTPException(status_code=404, detail="Note not found")
        return note

    def _autosave_tick(note_id: str) -> None:
        saver = autosavers.get(note_id)
        if saver is None:
            return
        saver.poll()
        if saver.pending:
            asyncio.get_running_loop().call_later(saver.due_in(), _autosave_tick, note_id)

    def _drop_autosaver(note_id: str, save: bool) -> None:
        saver = autosavers.pop(note_id, None)
        if saver is not None and save:
            saver.flush()

    @app.get("/", response_class=HTMLResponse)
    def home(request: Request, q: str | None = None, sort: str | None = None) -> HTMLResponse:
        mode = _sort_mode(sort)
        notes = filter_notes(store.notes, q or "", mode)
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "notes": [_card(n) for n in notes],
                "total": len(store.notes),
                "search_query": (q or "").strip(),
                "sort": mode,
                "theme": _theme(),
            },
        )

    @app.get("/notes/new", response_class=HTMLResponse)
    def new_note_form(request: Request) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "note_form.html",
            {"mode": "create", "note": Note().model_dump(), "colors": NOTE_COLORS, "theme": _theme()},
        )

    @app.post("/notes")
    async def create_note_action(
        title: str = Form(""),
        content: str = Form(""),
        color: str = Form("default"),
        pinned: bool = Form(False),
        image: UploadFile | None = File(None),
    ) -> Response:
        draft = _draft(
            {
                "title": title,
                "content": content,
                "color": color,
                "pinned": pinned,
                "image": await _image_data_uri(image),
            }
        )
        note = save_draft(store, draft)
        if note is None:
            return RedirectResponse(url="/", status_code=303)
        return RedirectResponse(url=f"/#note-{note.id}", status_code=303)

    @app.get("/notes/{note_id}/edit", response_class=HTMLResponse)
    def edit_note_form(request: Request, note_id: str) -> HTMLResponse:
        note = _require(note_id)
        return templates.TemplateResponse(
            request,
            "note_form.html",
            {
                "mode": "edit",
                "note": note.model_dump(),
                "colors": NOTE_COLORS,
                "theme": _theme(),
            },
        )

    @app.post("/notes/{note_id}")
    async def update_note_action(
        note_id: str,
        title: str = Form(""),
        content: str = Form(""),
        color: str = Form("default"),
        pinned: bool = Form(False),
        remove_image: bool = Form(False),
        image: UploadFile | None = File(None),
    ) -> Response:
        _require(note_id)
        fields: dict = {"id": note_id, "title": title, "content": content, "color": color, "pinned": pinned}
        new_image = await _image_data_uri(image)
        if new_image is not None:
            fields["image"] = new_image
        elif remove_image:
            fields["image"] = None
        _drop_autosaver(note_id, save=True)
        save_draft(store, _draft(fields))
        return RedirectResponse(url=f"/#note-{note_id}", status_code=303)

    @app.post("/notes/{note_id}/delete")
    async def delete_note_action(note_id: str) -> Response:
        _drop_autosaver(note_id, save=False)
        store.delete(note_id)
        return RedirectResponse(url="/", status_code=303)

    @app.post("/notes/{note_id}/pin")
    def pin_note_action(note_id: str) -> Response:
        _require(note_id)
        store.toggle_pin(note_id)
        return RedirectResponse(url=f"/#note-{note_id}", status_code=303)

    @app.post("/theme")
    def toggle_theme() -> Response:
        theme = "light" if _theme() == "dark" else "dark"
        try:
            storage.set_item(THEME_KEY, theme)
        except StorageError:
            log.exception("Failed to save theme preference")
        return RedirectResponse(url="/", status_code=303)

    @app.get("/export.json")
    def export_json() -> JSONResponse:
        return JSONResponse({"notes": [n.model_dump(by_alias=True) for n in store.notes]})

    # ---- JSON API ----

    @app.get("/api/notes", response_model=list[Note])
    def api_list(q: str | None = None, sort: str | None = None) -> list[Note]:
        return filter_notes(store.notes, q or "", _sort_mode(sort))

    @app.get("/api/notes/{note_id}", response_model=Note)
    def api_get(note_id: str) -> Note:
        return _require(note_id)

    @app.post("/api/notes", response_model=Note, status_code=201)
    def api_create(payload: NoteCreate) -> Note:
        return store.create(payload)

    @app.patch("/api/notes/{note_id}", response_model=Note)
    def api_update(note_id: str, payload: NoteEdit) -> Note:
        _require(note_id)
        return store.update(payload.for_note(note_id))

    @app.delete("/api/notes/{note_id}", status_code=204)
    async def api_delete(note_id: str) -> Response:
        _drop_autosaver(note_id, save=False)
        store.delete(note_id)
        return Response(status_code=204)

    @app.post("/api/notes/{note_id}/pin", response_model=Note)
    def api_pin(note_id: str) -> Note:
        _require(note_id)
        store.toggle_pin(note_id)
        return _require(note_id)

    @app.post("/api/notes/{note_id}/draft", status_code=202)
    async def api_draft(note_id: str, payload: NoteEdit) -> dict:
        _require(note_id)
        saver = autosavers.get(note_id)
        if saver is None:
            saver = autosavers[note_id] = AutoSaver(store, delay=settings.autosave_delay)
        saver.push(payload.for_note(note_id))
        asyncio.get_running_loop().call_later(saver.delay, _autosave_tick, note_id)
        return {"pending": saver.pending, "due_in": saver.due_in()}

    @app.post("/api/bullets", response_model=BulletEdit)
    def api_bullets(payload: BulletEdit) -> BulletEdit:
        text, start, end = toggle_bullets(payload.text, payload.start, payload.end)
        return BulletEdit(text=text, start=start, end=end)

    @app.get("/healthz")
    def healthz() -> dict:
        return {"ok": True, "notes": len(store.notes), "db": str(settings.db_path)}

    return app
