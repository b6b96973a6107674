"""Optimistic-concurrency autosave for one editor session.

The session owns nothing but bookkeeping: the editor mutates the
:class:`~workflow_studio.model.graph.StepGraph` directly and calls
:meth:`CollaborationSession.notify_edit`. After the debounce window the
current snapshot is submitted together with the last-known version. The
server decides ordering; the session never merges or replays saves.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any

from workflow_studio.core.config import SessionConfig
from workflow_studio.model.graph import StepGraph
from workflow_studio.model.steps import Workflow
from workflow_studio.model.validation import validate_draft
from workflow_studio.model.variables import merge_variable_names
from workflow_studio.persistence.fragments import build_step_fragment

from .errors import TransportError, VersionConflictError
from .messages import ConflictResult, ErrorResult, SavedResult
from .state_machine import IllegalTransitionError, SessionState, transition
from .transport import ChannelHandlers, SaveResult, Unsubscribe, WorkflowTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StatusDisplay:
    """What the status badge shows. ``dismiss_after`` is None for sticky messages."""

    kind: str = "idle"
    message: str = ""
    dismiss_after: float | None = None

    @property
    def neutral(self) -> bool:
        return self.kind == "idle"


NEUTRAL = StatusDisplay()


class CollaborationSession:
    def __init__(
        self,
        graph: StepGraph,
        transport: WorkflowTransport,
        *,
        version: int,
        config: SessionConfig | None = None,
    ) -> None:
        self.graph = graph
        self.transport = transport
        self.config = config or SessionConfig()
        self.workflow_id = graph.workflow_id

        # Baseline submitted with the next save. Only saves and force() move it.
        self.version = version
        # What the UI shows; remote updates may move it ahead of the baseline.
        self.displayed_version = version
        self.last_saved_by: str | None = None
        self.last_saved_at: str | None = None

        self.conflict: ConflictResult | None = None
        self.last_errors: list[str] = []
        self.status: StatusDisplay = NEUTRAL

        self._state = SessionState.READY
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connected: asyncio.Future[None] | None = None
        self._channel_down = False
        self._handlers: ChannelHandlers | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._debounce: asyncio.TimerHandle | None = None
        self._status_timer: asyncio.TimerHandle | None = None
        self._save_task: asyncio.Task[SaveResult | None] | None = None
        self._resubmit = False

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def has_pending_edit(self) -> bool:
        return self._debounce is not None or self._resubmit

    def _move(self, to: SessionState) -> None:
        previous = self._state
        self._state = transition(current=previous, to=to)
        logger.debug(
            "Session state changed",
            extra={"workflow_id": self.workflow_id, "from": previous.value, "to": to.value},
        )

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _show(self, kind: str, message: str, dismiss_after: float | None) -> None:
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None
        self.status = StatusDisplay(kind=kind, message=message, dismiss_after=dismiss_after)
        if dismiss_after is not None:
            self._status_timer = self._get_loop().call_later(dismiss_after, self._clear_status)

    def _clear_status(self) -> None:
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None
        self.status = NEUTRAL
        # A failed save leaves the channel usable; only a lost channel keeps ERROR.
        if self._state == SessionState.ERROR and not self._channel_down:
            self._move(SessionState.READY)

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Open the remote-update channel."""

        loop = self._get_loop()
        self._connected = loop.create_future()
        self._handlers = ChannelHandlers(
            connected=self._on_connected,
            disconnected=self._on_disconnected,
            saved=self._on_remote_saved,
            error=self._on_remote_error,
            conflict=self._on_remote_conflict,
        )
        try:
            await self._subscribe()
        except TransportError as e:
            self._on_transport_error(e)

    async def _subscribe(self) -> None:
        if self._handlers is None:
            raise RuntimeError("Session has not been started")
        self._unsubscribe = await self.transport.subscribe(self.workflow_id, self._handlers)
        if self._state == SessionState.ERROR:
            self._move(SessionState.READY)
            self._clear_status()
        logger.info("Channel subscribed", extra={"workflow_id": self.workflow_id})

    async def wait_until_connected(self) -> None:
        """Resolve once the channel has reported its first ``connected`` event."""

        if self._connected is None:
            raise RuntimeError("Session has not been started")
        await asyncio.shield(self._connected)

    async def close(self) -> None:
        if self._state == SessionState.CLOSED:
            return
        self._cancel_debounce()
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None
        task, self._save_task = self._save_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._move(SessionState.CLOSED)

    # -- autosave ------------------------------------------------------------

    def notify_edit(self) -> None:
        """Record a local edit and restart the debounce timer."""

        if self._state == SessionState.CLOSED:
            raise IllegalTransitionError("Session is closed")
        self._cancel_debounce()
        self._debounce = self._get_loop().call_later(
            self.config.debounce_seconds, self._on_debounce
        )

    def _cancel_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    def _on_debounce(self) -> None:
        self._debounce = None
        if self._state == SessionState.CONFLICT:
            logger.debug("Autosave suspended by conflict", extra={"workflow_id": self.workflow_id})
            return
        if self._state == SessionState.ERROR and self._channel_down:
            return
        if self._save_task is not None and not self._save_task.done():
            # Picked up once the in-flight response arrives.
            self._resubmit = True
            return
        self._save_task = self._get_loop().create_task(self._save_cycle())

    async def flush(self) -> SaveResult | None:
        """Submit immediately instead of waiting for the debounce timer.

        Raises:
            VersionConflictError: If a conflict is unresolved.
        """

        if self._state == SessionState.CONFLICT and self.conflict is not None:
            raise VersionConflictError(self.conflict.version, self.conflict.conflicting_user)
        if self._state == SessionState.CLOSED:
            raise IllegalTransitionError("Session is closed")
        self._cancel_debounce()
        if self._save_task is not None and not self._save_task.done():
            self._resubmit = True
            return await self._save_task
        self._save_task = self._get_loop().create_task(self._save_cycle())
        return await self._save_task

    async def _save_cycle(self) -> SaveResult | None:
        if self._unsubscribe is None and self._handlers is not None:
            # The channel never opened; retry it before submitting.
            try:
                await self._subscribe()
            except TransportError as e:
                self._on_transport_error(e)
                return None
        result = await self._submit_once()
        while self._resubmit and self._state == SessionState.READY:
            result = await self._submit_once()
        self._resubmit = False
        return result

    async def _submit_once(self) -> SaveResult | None:
        self._resubmit = False
        snapshot = self.graph.to_workflow(version=self.version).content_json()
        expected = self.version
        self._move(SessionState.SAVING)
        self._show("saving", "Saving...", None)
        try:
            result = await self.transport.save(self.workflow_id, snapshot, expected)
        except TransportError as e:
            self._on_transport_error(e)
            return None
        self._apply(result)
        return result

    def _apply(self, result: SaveResult) -> None:
        if isinstance(result, SavedResult):
            self.version = result.version
            self.displayed_version = max(self.displayed_version, result.version)
            self.last_saved_by = result.saved_by
            self.last_saved_at = result.timestamp
            self._move(SessionState.SAVED)
            self._show("saved", "Saved", self.config.saved_status_seconds)
            self._move(SessionState.READY)
            logger.info(
                "Autosave accepted",
                extra={"workflow_id": self.workflow_id, "version": result.version},
            )
        elif isinstance(result, ConflictResult):
            self.conflict = result
            self.displayed_version = max(self.displayed_version, result.version)
            self._resubmit = False
            self._move(SessionState.CONFLICT)
            self._show("conflict", result.message, None)
            logger.warning(
                "Autosave conflict",
                extra={
                    "workflow_id": self.workflow_id,
                    "submitted_version": self.version,
                    "server_version": result.version,
                },
            )
        else:
            self.last_errors = list(result.errors)
            self._move(SessionState.ERROR)
            self._show("error", "; ".join(result.errors), self.config.error_status_seconds)
            self._move(SessionState.READY)
            logger.warning(
                "Autosave rejected",
                extra={"workflow_id": self.workflow_id, "errors": len(result.errors)},
            )

    def _on_transport_error(self, error: TransportError) -> None:
        if self._state in {SessionState.READY, SessionState.SAVING}:
            self._move(SessionState.ERROR)
        if self._state != SessionState.CONFLICT:
            self._show("error", f"Connection lost: {error}", self.config.error_status_seconds)
        logger.warning(
            "Transport failure", extra={"workflow_id": self.workflow_id, "error": str(error)}
        )

    # -- conflict resolution -----------------------------------------------

    def _require_conflict(self) -> ConflictResult:
        if self._state != SessionState.CONFLICT or self.conflict is None:
            raise IllegalTransitionError(f"No unresolved conflict (state: {self._state.value})")
        return self.conflict

    async def force(self) -> SaveResult | None:
        """Adopt the server version and resubmit local content (last writer wins)."""

        conflict = self._require_conflict()
        self.version = conflict.version
        self.conflict = None
        self._cancel_debounce()
        logger.info(
            "Forcing local content",
            extra={"workflow_id": self.workflow_id, "version": conflict.version},
        )
        self._save_task = self._get_loop().create_task(self._save_cycle())
        return await self._save_task

    def dismiss(self) -> None:
        """Leave the conflict without changing the baseline version."""

        self._require_conflict()
        self.conflict = None
        self._move(SessionState.READY)
        self._clear_status()

    async def refresh(self) -> Workflow:
        """Discard local state and return the server snapshot. The session closes."""

        conflict = self._require_conflict()
        snapshot = dict(conflict.snapshot)
        snapshot["version"] = conflict.version
        await self.close()
        return Workflow.from_json(snapshot)

    # -- channel events ------------------------------------------------------

    def _on_connected(self) -> None:
        if self._connected is not None and not self._connected.done():
            self._connected.set_result(None)
        was_down, self._channel_down = self._channel_down, False
        if was_down and self._state == SessionState.ERROR:
            self._move(SessionState.READY)
            self._clear_status()
            logger.info("Session reconnected", extra={"workflow_id": self.workflow_id})

    def _on_disconnected(self) -> None:
        self._channel_down = True
        if self._state == SessionState.READY:
            self._move(SessionState.ERROR)
        if self._state != SessionState.CONFLICT:
            self._show("error", "Disconnected", self.config.error_status_seconds)

    def _on_remote_saved(self, result: SavedResult) -> None:
        # Bookkeeping only; the edit buffer and the baseline version are untouched.
        self.displayed_version = max(self.displayed_version, result.version)
        self.last_saved_by = result.saved_by
        self.last_saved_at = result.timestamp
        logger.info(
            "Remote update",
            extra={
                "workflow_id": self.workflow_id,
                "version": result.version,
                "saved_by": result.saved_by,
            },
        )

    def _on_remote_error(self, result: ErrorResult) -> None:
        logger.info(
            "Remote save error", extra={"workflow_id": self.workflow_id, "errors": result.errors}
        )

    def _on_remote_conflict(self, result: ConflictResult) -> None:
        self.displayed_version = max(self.displayed_version, result.version)

    # -- editor helpers ------------------------------------------------------

    def draft_warnings(self) -> list[str]:
        return validate_draft(self.graph).warnings

    async def step_fragment(
        self, step_type: str, index: int, payload: dict[str, Any] | None = None
    ) -> str:
        """Editing markup for a new step, rendered locally when the server cannot."""

        data = dict(payload or {})
        try:
            return await self.transport.render_step_fragment(
                self.workflow_id, step_type, index, data
            )
        except (TransportError, NotImplementedError):
            logger.debug("Rendering step fragment locally", extra={"step_type": step_type})
            return build_step_fragment(step_type, index, data)

    async def available_variables(self) -> list[str]:
        """Server-derived variable names merged with the local ones (local first)."""

        local = self.graph.registry.names()
        try:
            remote = await self.transport.list_variables(self.workflow_id)
        except TransportError:
            remote = []
        return merge_variable_names(local, remote)
