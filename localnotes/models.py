from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field

NOTE_COLORS: tuple[str, ...] = ("default", "yellow", "blue", "green")
UNTITLED = "Untitled"


def clean_title(title: str) -> str:
    return title.strip() or UNTITLED


def _blank_color(value: Any) -> Any:
    # stored notes from older editors carry "" for the default label
    return value or "default"


NoteColor = Annotated[Literal["default", "yellow", "blue", "green"], BeforeValidator(_blank_color)]


def _data_uri(value: str | None) -> str | None:
    if value is not None and not value.startswith("data:"):
        raise ValueError("image must be a data: URI")
    return value


ImageData = Annotated[str | None, AfterValidator(_data_uri)]


class Note(BaseModel):
    """A stored note.

    Serialized with camelCase keys (``createdAt``/``updatedAt``). Every field
    has a default so partial edits validate as a ``Note`` too; which fields an
    edit actually carried is read from ``model_fields_set``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = ""
    title: str = ""
    content: str = ""
    created_at: str = Field(default="", alias="createdAt")
    updated_at: str = Field(default="", alias="updatedAt")
    pinned: bool = False
    color: NoteColor = "default"
    image: ImageData = None


class NoteCreate(BaseModel):
    title: str = ""
    content: str = ""
    pinned: bool = False
    color: NoteColor = "default"
    image: ImageData = None


class NoteEdit(BaseModel):
    """Partial update body; only the keys the client sends are applied."""

    title: str = ""
    content: str = ""
    pinned: bool = False
    color: NoteColor = "default"
    image: ImageData = None

    def for_note(self, note_id: str) -> Note:
        return Note.model_validate({"id": note_id, **self.model_dump(exclude_unset=True)})


class BulletEdit(BaseModel):
    """Textarea value plus selection, as sent by the editor's list button."""

    text: str
    start: int = Field(default=0, ge=0)
    end: int = Field(default=0, ge=0)
