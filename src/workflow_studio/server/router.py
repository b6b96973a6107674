"""Workflow collaboration API.

All routes are mounted under `/api`. Saves answer 200 when accepted, 409 on a
version conflict and 422 when the snapshot is rejected.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from workflow_studio.collaboration.messages import (
    AutosaveMessage,
    ConflictResult,
    ErrorResult,
    SavedResult,
)
from workflow_studio.model.errors import NoMatchingBranchError, StepNotFoundError
from workflow_studio.model.graph import StepGraph
from workflow_studio.model.validation import validate_draft
from workflow_studio.persistence.hub import WorkflowHub, WorkflowNotFoundError
from workflow_studio.persistence.store import WorkflowRecord
from workflow_studio.server.config import ServerSettings
from workflow_studio.server.models import (
    ApiWorkflowSummary,
    ConvertRequest,
    NextStepRequest,
    NextStepResponse,
    PresenceResponse,
    PublishResponse,
    StepRenderRequest,
    StepRenderResponse,
    WorkflowCreate,
    WorkflowSave,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_CODES = {"saved": 200, "conflict": 409, "error": 422}


def _hub(request: Request) -> WorkflowHub:
    hub = getattr(request.app.state, "hub", None)
    if not isinstance(hub, WorkflowHub):
        raise HTTPException(status_code=500, detail="Workflow hub not configured")
    return hub


def _settings(request: Request) -> ServerSettings:
    settings = getattr(request.app.state, "settings", None)
    if not isinstance(settings, ServerSettings):
        raise HTTPException(status_code=500, detail="Server settings not configured")
    return settings


def _record_or_404(hub: WorkflowHub, workflow_id: str) -> WorkflowRecord:
    try:
        return hub.record(workflow_id)
    except WorkflowNotFoundError:
        raise HTTPException(status_code=404, detail="Workflow not found") from None


def _result_response(result: SavedResult | ConflictResult | ErrorResult) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_CODES[result.status], content=result.model_dump(mode="json")
    )


def _summary(record: WorkflowRecord) -> ApiWorkflowSummary:
    return ApiWorkflowSummary(
        id=record.id,
        title=record.title,
        version=record.version,
        status=record.status,
        graph_mode=record.graph_mode,
        step_count=len(record.steps),
        updated_at=record.updated_at,
        saved_by=record.saved_by,
    )


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/workflows", response_model=list[ApiWorkflowSummary])
def list_workflows(request: Request) -> list[ApiWorkflowSummary]:
    return [_summary(r) for r in _hub(request).store.list()]


@router.post("/workflows", status_code=201)
def create_workflow(request: Request, body: WorkflowCreate) -> dict[str, Any]:
    record = _hub(request).store.create(
        title=body.title,
        description=body.description,
        graph_mode=body.graph_mode,
        steps=body.steps,
        created_by=body.user,
    )
    return record.snapshot()


@router.get("/workflows/{workflow_id}")
def get_workflow(request: Request, workflow_id: str) -> dict[str, Any]:
    record = _record_or_404(_hub(request), workflow_id)
    out = record.snapshot()
    out["saved_by"] = record.saved_by
    out["updated_at"] = record.updated_at
    return out


@router.put("/workflows/{workflow_id}", response_model=None)
def save_workflow(request: Request, workflow_id: str, body: WorkflowSave) -> JSONResponse:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    result = hub.save(workflow_id, body.snapshot, body.version, user=body.user)
    return _result_response(result)


@router.get("/workflows/{workflow_id}/warnings")
def draft_warnings(request: Request, workflow_id: str) -> list[str]:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    return validate_draft(StepGraph(hub.workflow(workflow_id))).warnings


@router.post("/workflows/{workflow_id}/publish", response_model=PublishResponse)
def publish_workflow(request: Request, workflow_id: str) -> PublishResponse | JSONResponse:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    report = hub.publish(workflow_id, strict_conditions=_settings(request).strict_conditions)
    response = PublishResponse(ok=report.ok, errors=report.errors, warnings=report.warnings)
    if not report.ok:
        return JSONResponse(status_code=422, content=response.model_dump(mode="json"))
    return response


@router.post("/workflows/{workflow_id}/convert", response_model=None)
def convert_workflow(request: Request, workflow_id: str, body: ConvertRequest) -> JSONResponse:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    return _result_response(hub.convert(workflow_id, body.version, user=body.user))


@router.get("/workflows/{workflow_id}/variables")
def list_variables(request: Request, workflow_id: str) -> list[str]:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    return hub.list_variables(workflow_id)


@router.get("/workflows/{workflow_id}/layout")
def workflow_layout(request: Request, workflow_id: str) -> dict[str, object]:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    return hub.layout(workflow_id).to_json()


@router.get("/workflows/{workflow_id}/presence", response_model=PresenceResponse)
def presence(request: Request, workflow_id: str) -> PresenceResponse:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    return PresenceResponse(active_users=hub.active_users(workflow_id))


@router.post("/workflows/{workflow_id}/steps/render", response_model=StepRenderResponse)
def render_step(request: Request, workflow_id: str, body: StepRenderRequest) -> StepRenderResponse:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    try:
        html = hub.render_step_fragment(workflow_id, body.step_type, body.index, body.payload)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return StepRenderResponse(html=html)


@router.post("/workflows/{workflow_id}/next-step", response_model=NextStepResponse)
def next_step(request: Request, workflow_id: str, body: NextStepRequest) -> NextStepResponse:
    hub = _hub(request)
    _record_or_404(hub, workflow_id)
    try:
        target = hub.next_step(workflow_id, body.step_id, body.bindings)
    except StepNotFoundError:
        raise HTTPException(status_code=404, detail="Step not found") from None
    except NoMatchingBranchError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return NextStepResponse(next_step_id=target)


@router.websocket("/workflows/{workflow_id}/channel")
async def workflow_channel(websocket: WebSocket, workflow_id: str, user: str | None = None) -> None:
    """Autosave and remote-update channel.

    The client sends ``{"type": "autosave", "snapshot": ..., "version": ...}``.
    The server answers with the save result and pushes saves made by other
    clients as ``saved`` events.
    """

    hub: WorkflowHub = websocket.app.state.hub
    record = hub.store.get(workflow_id)
    if record is None:
        await websocket.close(code=4404)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    origin = uuid.uuid4().hex

    def on_remote(result: SavedResult | ConflictResult | ErrorResult) -> None:
        # Hub listeners may run on a worker thread.
        loop.call_soon_threadsafe(outbox.put_nowait, result.model_dump(mode="json"))

    unsubscribe = hub.subscribe(workflow_id, on_remote, origin=origin, user=user)
    outbox.put_nowait(
        {
            "status": "connected",
            "version": record.version,
            "active_users": hub.active_users(workflow_id),
        }
    )

    async def pump() -> None:
        while True:
            await websocket.send_json(await outbox.get())

    sender = asyncio.create_task(pump())
    logger.info("Channel opened", extra={"workflow_id": workflow_id, "user": user})
    try:
        while True:
            raw = await websocket.receive_json()
            try:
                message = AutosaveMessage.model_validate(raw)
            except PydanticValidationError as e:
                errors = [str(err.get("msg", "")) for err in e.errors()]
                outbox.put_nowait(ErrorResult(errors=errors).model_dump(mode="json"))
                continue
            result = await asyncio.to_thread(
                hub.save,
                workflow_id,
                message.snapshot,
                message.version,
                user=message.user or user,
                origin=origin,
            )
            outbox.put_nowait(result.model_dump(mode="json"))
    except WebSocketDisconnect:
        logger.info("Channel closed", extra={"workflow_id": workflow_id, "user": user})
    finally:
        unsubscribe()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
