"""Editor events accepted at the engine boundary.

Edit operations form a closed set of tagged variants; anything else is
rejected by validation before it reaches the recorder.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from code_chronicle.core.errors import InvalidArgument


class CursorModel(BaseModel):
    line: int = Field(default=0, ge=0)
    character: int = Field(default=0, ge=0)


class FullReplace(BaseModel):
    kind: Literal["full"] = "full"
    text: str


class Insert(BaseModel):
    kind: Literal["insert"] = "insert"
    offset: int = Field(ge=0)
    text: str


class Delete(BaseModel):
    kind: Literal["delete"] = "delete"
    offset: int = Field(ge=0)
    length: int = Field(ge=0)


class RangeReplace(BaseModel):
    kind: Literal["replace"] = "replace"
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    text: str

    @model_validator(mode="after")
    def _ordered(self) -> "RangeReplace":
        if self.end < self.start:
            raise ValueError("range end precedes start")
        return self


EditOperation = Annotated[Union[FullReplace, Insert, Delete, RangeReplace], Field(discriminator="kind")]
_EDIT_ADAPTER: TypeAdapter[EditOperation] = TypeAdapter(EditOperation)


class _PathEvent(BaseModel):
    path: str
    # Editor wall time, informational only; history is stamped by the engine clock.
    timestamp: int | None = Field(default=None, ge=0)

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        normalized = value.replace("\\", "/").strip()
        if not normalized:
            raise ValueError("path must not be empty")
        return normalized


class FileChangeEvent(_PathEvent):
    edits: list[EditOperation] = Field(min_length=1)
    cursor: CursorModel | None = None


class FileOpenEvent(_PathEvent):
    content: str


class FileCreateEvent(_PathEvent):
    content: str = ""


class FileDeleteEvent(_PathEvent):
    pass


class FileSaveEvent(_PathEvent):
    content: str | None = None


def parse_edit(payload: object) -> EditOperation:
    return _EDIT_ADAPTER.validate_python(payload)


def apply_edits(content: str, edits: list[EditOperation]) -> str:
    """Apply edit operations in order; offsets refer to the text as edited so far."""
    for edit in edits:
        if isinstance(edit, FullReplace):
            content = edit.text
        elif isinstance(edit, Insert):
            _check_offset(edit.offset, content)
            content = content[: edit.offset] + edit.text + content[edit.offset :]
        elif isinstance(edit, Delete):
            _check_offset(edit.offset + edit.length, content)
            content = content[: edit.offset] + content[edit.offset + edit.length :]
        else:
            _check_offset(edit.end, content)
            content = content[: edit.start] + edit.text + content[edit.end :]
    return content


def _check_offset(offset: int, content: str) -> None:
    if offset > len(content):
        raise InvalidArgument(f"edit offset {offset} is beyond document length {len(content)}")


__all__ = [
    "CursorModel",
    "FullReplace",
    "Insert",
    "Delete",
    "RangeReplace",
    "EditOperation",
    "FileChangeEvent",
    "FileOpenEvent",
    "FileCreateEvent",
    "FileDeleteEvent",
    "FileSaveEvent",
    "parse_edit",
    "apply_edits",
]
