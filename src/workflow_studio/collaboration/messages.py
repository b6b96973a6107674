"""Wire shapes exchanged with the persistence collaborator."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class SavedResult(BaseModel):
    status: Literal["saved"] = "saved"
    version: int
    saved_by: str | None = None
    timestamp: str


class ConflictResult(BaseModel):
    status: Literal["conflict"] = "conflict"
    version: int
    snapshot: dict[str, Any] = Field(default_factory=dict)
    conflicting_user: str | None = None
    message: str = "This workflow was modified by another user."


class ErrorResult(BaseModel):
    status: Literal["error"] = "error"
    errors: list[str] = Field(default_factory=list)


SaveResult = Annotated[SavedResult | ConflictResult | ErrorResult, Field(discriminator="status")]

_save_result_adapter: TypeAdapter[SavedResult | ConflictResult | ErrorResult] = TypeAdapter(
    SaveResult
)


def parse_save_result(raw: dict[str, Any]) -> SavedResult | ConflictResult | ErrorResult:
    return _save_result_adapter.validate_python(raw)


class AutosaveMessage(BaseModel):
    """Client to server message on the workflow channel."""

    type: Literal["autosave"] = "autosave"
    snapshot: dict[str, Any]
    version: int
    user: str | None = None
