"""In-process persistence collaborator.

:class:`WorkflowHub` arbitrates saves through :class:`WorkflowStore` and fans
accepted saves out to every other subscriber of the same workflow.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from workflow_studio.collaboration.messages import ConflictResult, ErrorResult, SavedResult
from workflow_studio.core.config import LayoutConfig, LimitsConfig
from workflow_studio.layout.engine import Layout, LayoutEngine
from workflow_studio.model.conversion import convert_to_graph_mode
from workflow_studio.model.errors import ConversionError
from workflow_studio.model.graph import StepGraph
from workflow_studio.model.routing import next_step
from workflow_studio.model.steps import Workflow
from workflow_studio.model.validation import (
    ValidationReport,
    size_problems,
    snapshot_size_problems,
    subflow_problems,
    validate_for_publish,
)

from .fragments import build_step_fragment
from .store import WorkflowRecord, WorkflowStore

logger = logging.getLogger(__name__)

SaveResult = SavedResult | ConflictResult | ErrorResult
Listener = Callable[[SaveResult], None]


class WorkflowNotFoundError(KeyError):
    pass


@dataclass
class _Subscriber:
    token: int
    origin: str
    user: str | None
    listener: Listener


@dataclass
class WorkflowHub:
    store: WorkflowStore
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    layout_config: LayoutConfig = field(default_factory=LayoutConfig)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[_Subscriber]] = {}
        self._next_token = 0

    # -- records -----------------------------------------------------------

    def record(self, workflow_id: str) -> WorkflowRecord:
        record = self.store.get(workflow_id)
        if record is None:
            raise WorkflowNotFoundError(workflow_id)
        return record

    def workflow(self, workflow_id: str) -> Workflow:
        return self.record(workflow_id).to_workflow()

    def _stored(self, workflow_id: str) -> Workflow | None:
        record = self.store.get(workflow_id)
        return record.to_workflow() if record is not None else None

    # -- save --------------------------------------------------------------

    def save(
        self,
        workflow_id: str,
        snapshot: dict[str, Any],
        expected_version: int,
        *,
        user: str | None = None,
        origin: str | None = None,
    ) -> SaveResult:
        """Accept-and-increment iff ``expected_version`` is current.

        A stale version always conflicts, even when the content matches the
        stored snapshot. Accepted saves are broadcast to subscribers other
        than ``origin``.
        """

        problems = snapshot_size_problems(snapshot, self.limits)
        if not problems:
            try:
                workflow = Workflow.from_json(snapshot)
            except ValueError as e:
                problems = [str(e)]
            else:
                problems = size_problems(workflow, self.limits)
        if problems:
            logger.info(
                "Save rejected", extra={"workflow_id": workflow_id, "errors": len(problems)}
            )
            return ErrorResult(errors=problems)

        try:
            accepted, record = self.store.save_if_current(
                workflow_id, snapshot, expected_version=expected_version, saved_by=user
            )
        except KeyError:
            return ErrorResult(errors=[f"Workflow not found: {workflow_id}"])

        if not accepted:
            who = record.saved_by or "another user"
            return ConflictResult(
                version=record.version,
                snapshot=record.snapshot(),
                conflicting_user=record.saved_by,
                message=f"This workflow was modified by {who}. Refresh to see the latest version.",
            )

        result = SavedResult(version=record.version, saved_by=user, timestamp=record.updated_at)
        logger.info(
            "Workflow saved",
            extra={"workflow_id": workflow_id, "version": record.version, "saved_by": user},
        )
        self._broadcast(workflow_id, result, exclude=origin)
        return result

    # -- channel -----------------------------------------------------------

    def subscribe(
        self,
        workflow_id: str,
        listener: Listener,
        *,
        origin: str,
        user: str | None = None,
    ) -> Callable[[], None]:
        """Register ``listener`` for saves from other clients; returns an unsubscribe."""

        with self._lock:
            self._next_token += 1
            sub = _Subscriber(token=self._next_token, origin=origin, user=user, listener=listener)
            self._subscribers.setdefault(workflow_id, []).append(sub)
        logger.debug("Channel subscribed", extra={"workflow_id": workflow_id, "origin": origin})

        def unsubscribe() -> None:
            with self._lock:
                subs = self._subscribers.get(workflow_id, [])
                self._subscribers[workflow_id] = [s for s in subs if s.token != sub.token]
                if not self._subscribers[workflow_id]:
                    del self._subscribers[workflow_id]

        return unsubscribe

    def active_users(self, workflow_id: str) -> list[str]:
        """Users with an open channel on ``workflow_id``, in join order."""

        with self._lock:
            subs = list(self._subscribers.get(workflow_id, []))
        seen: list[str] = []
        for sub in subs:
            if sub.user and sub.user not in seen:
                seen.append(sub.user)
        return seen

    def _broadcast(self, workflow_id: str, result: SaveResult, *, exclude: str | None) -> None:
        with self._lock:
            targets = [s for s in self._subscribers.get(workflow_id, []) if s.origin != exclude]
        for sub in targets:
            try:
                sub.listener(result)
            except Exception:
                logger.exception(
                    "Channel listener failed",
                    extra={"workflow_id": workflow_id, "origin": sub.origin},
                )

    # -- derived views -----------------------------------------------------

    def list_variables(self, workflow_id: str) -> list[str]:
        return StepGraph(self.workflow(workflow_id)).registry.names()

    def render_step_fragment(
        self, workflow_id: str, step_type: str, index: int, payload: dict[str, Any]
    ) -> str:
        return build_step_fragment(step_type, index, payload)

    def layout(self, workflow_id: str) -> Layout:
        graph = StepGraph(self.workflow(workflow_id))
        return LayoutEngine(self.layout_config).compute_for(graph)

    def publish(self, workflow_id: str, *, strict_conditions: bool = False) -> ValidationReport:
        """Validate for publish and mark the workflow published when it passes."""

        workflow = self.workflow(workflow_id)
        report = validate_for_publish(
            StepGraph(workflow), self.limits, strict_conditions=strict_conditions
        )
        report.errors.extend(
            subflow_problems(workflow, self._stored, max_depth=self.limits.max_subflow_depth)
        )
        if report.ok:
            self.store.update(workflow_id, status="published")
            logger.info("Workflow published", extra={"workflow_id": workflow_id})
        return report

    def next_step(self, workflow_id: str, step_id: str, bindings: dict[str, Any]) -> str | None:
        return next_step(StepGraph(self.workflow(workflow_id)), step_id, bindings)

    def convert(
        self,
        workflow_id: str,
        expected_version: int,
        *,
        user: str | None = None,
        origin: str | None = None,
    ) -> SaveResult:
        """Convert the stored workflow to graph mode and save it as a new version."""

        try:
            converted = convert_to_graph_mode(self.workflow(workflow_id))
        except ConversionError as e:
            return ErrorResult(errors=list(e.errors))
        return self.save(
            workflow_id, converted.content_json(), expected_version, user=user, origin=origin
        )
