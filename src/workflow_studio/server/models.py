"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ApiWorkflowSummary(BaseModel):
    id: str
    title: str
    version: int
    status: str
    graph_mode: bool
    step_count: int
    updated_at: str
    saved_by: str | None = None


class WorkflowCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str = ""
    graph_mode: bool = False
    steps: list[dict[str, Any]] = Field(default_factory=list)
    user: str | None = None


class WorkflowSave(BaseModel):
    snapshot: dict[str, Any]
    version: int = Field(ge=0)
    user: str | None = None


class PublishResponse(BaseModel):
    ok: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class StepRenderRequest(BaseModel):
    step_type: str
    index: int = Field(ge=0)
    payload: dict[str, Any] = Field(default_factory=dict)


class StepRenderResponse(BaseModel):
    html: str


class NextStepRequest(BaseModel):
    step_id: str
    bindings: dict[str, Any] = Field(default_factory=dict)


class NextStepResponse(BaseModel):
    next_step_id: str | None


class ConvertRequest(BaseModel):
    version: int = Field(ge=0)
    user: str | None = None


class PresenceResponse(BaseModel):
    active_users: list[str]
