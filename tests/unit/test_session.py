"""Tests for the autosave session against an in-process hub.

Each test drives its scenario with ``asyncio.run`` so timers and tasks share
one event loop.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from workflow_studio.collaboration.errors import TransportError, VersionConflictError
from workflow_studio.collaboration.messages import ConflictResult, SavedResult
from workflow_studio.collaboration.session import CollaborationSession
from workflow_studio.collaboration.state_machine import IllegalTransitionError, SessionState
from workflow_studio.collaboration.transport import (
    ChannelHandlers,
    LocalTransport,
    SaveResult,
    Unsubscribe,
    WorkflowTransport,
)
from workflow_studio.core.config import SessionConfig
from workflow_studio.model.graph import StepGraph
from workflow_studio.model.steps import StepType
from workflow_studio.persistence.hub import WorkflowHub

WORKFLOW_ID = "wf-age"


def _seed(hub: WorkflowHub, steps: list[dict[str, Any]], *, version: int = 0) -> StepGraph:
    record = hub.store.create(title="Age check", steps=steps, workflow_id=WORKFLOW_ID)
    for v in range(version):
        result = hub.save(WORKFLOW_ID, record.snapshot(), v, user="bob", origin="seed")
        assert isinstance(result, SavedResult)
    return StepGraph(hub.workflow(WORKFLOW_ID))


class GatedTransport(WorkflowTransport):
    """Holds every save until ``gate`` is set."""

    def __init__(self, inner: LocalTransport) -> None:
        self.inner = inner
        self.gate = asyncio.Event()
        self.submitted: list[tuple[str, int]] = []

    async def save(
        self, workflow_id: str, snapshot: dict[str, Any], expected_version: int
    ) -> SaveResult:
        await self.gate.wait()
        self.submitted.append((str(snapshot["steps"][0]["title"]), expected_version))
        return await self.inner.save(workflow_id, snapshot, expected_version)

    async def subscribe(self, workflow_id: str, handlers: ChannelHandlers) -> Unsubscribe:
        return await self.inner.subscribe(workflow_id, handlers)

    async def list_variables(self, workflow_id: str) -> list[str]:
        return await self.inner.list_variables(workflow_id)


def test_stale_version_conflicts_then_force_wins(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"], version=4)

    async def scenario() -> None:
        session = CollaborationSession(
            graph, LocalTransport(hub, user="alice"), version=3, config=fast_session_config
        )
        await session.start()
        graph.update_step("0", title="Ask your age")

        result = await session.flush()
        assert isinstance(result, ConflictResult)
        assert result.version == 4
        assert result.conflicting_user == "bob"
        assert session.state == SessionState.CONFLICT
        assert session.status.kind == "conflict"
        assert session.status.dismiss_after is None
        assert session.version == 3

        # Autosave stays suspended while the conflict is open.
        session.notify_edit()
        await asyncio.sleep(0.1)
        assert hub.record(WORKFLOW_ID).version == 4
        with pytest.raises(VersionConflictError):
            await session.flush()

        forced = await session.force()
        assert isinstance(forced, SavedResult)
        assert forced.version == 5
        assert session.version == 5
        assert session.state == SessionState.READY
        assert hub.record(WORKFLOW_ID).steps[0]["title"] == "Ask your age"
        assert hub.record(WORKFLOW_ID).saved_by == "alice"
        await session.close()

    asyncio.run(scenario())


def test_each_accepted_save_increments_version(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"], version=2)

    async def scenario() -> None:
        session = CollaborationSession(
            graph, LocalTransport(hub), version=2, config=fast_session_config
        )
        await session.start()
        for n in range(3):
            graph.update_step("2", content=f"Welcome {n}")
            result = await session.flush()
            assert isinstance(result, SavedResult)
        assert session.version == 5
        assert hub.record(WORKFLOW_ID).version == 5
        await session.close()

    asyncio.run(scenario())


def test_debounce_coalesces_edits_and_status_reverts(
    hub: WorkflowHub, age_workflow_json: dict[str, Any]
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])
    config = SessionConfig(debounce_ms=20, saved_status_seconds=0.2)

    async def scenario() -> None:
        session = CollaborationSession(
            graph, LocalTransport(hub), version=0, config=config
        )
        await session.start()
        for title in ("A", "Ab", "Abc"):
            graph.update_step("0", title=title)
            session.notify_edit()
        assert session.has_pending_edit

        await asyncio.sleep(0.1)
        assert hub.record(WORKFLOW_ID).version == 1
        assert hub.record(WORKFLOW_ID).steps[0]["title"] == "Abc"
        assert session.status.kind == "saved"

        await asyncio.sleep(0.25)
        assert session.status.neutral
        assert not session.has_pending_edit
        await session.close()

    asyncio.run(scenario())


def test_remote_update_leaves_baseline_and_buffer_alone(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    _seed(hub, age_workflow_json["steps"])

    async def scenario() -> None:
        graph_a = StepGraph(hub.workflow(WORKFLOW_ID))
        graph_b = StepGraph(hub.workflow(WORKFLOW_ID))
        alice = CollaborationSession(
            graph_a, LocalTransport(hub, user="alice"), version=0, config=fast_session_config
        )
        bob = CollaborationSession(
            graph_b, LocalTransport(hub, user="bob"), version=0, config=fast_session_config
        )
        await alice.start()
        await bob.start()
        assert hub.active_users(WORKFLOW_ID) == ["alice", "bob"]

        graph_a.update_step("0", title="Alice was here")
        await alice.flush()

        assert bob.displayed_version == 1
        assert bob.last_saved_by == "alice"
        assert bob.version == 0
        assert graph_b.get("0").title == "Ask age"
        assert alice.displayed_version == 1

        graph_b.update_step("0", title="Bob was here")
        result = await bob.flush()
        assert isinstance(result, ConflictResult)
        assert result.snapshot["steps"][0]["title"] == "Alice was here"

        await alice.close()
        await bob.close()
        assert hub.active_users(WORKFLOW_ID) == []

    asyncio.run(scenario())


def test_disconnect_suspends_autosave_without_replay(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])

    async def scenario() -> None:
        transport = LocalTransport(hub)
        session = CollaborationSession(graph, transport, version=0, config=fast_session_config)
        await session.start()
        await session.wait_until_connected()

        transport.disconnect()
        assert session.state == SessionState.ERROR
        assert session.status.message == "Disconnected"

        graph.update_step("0", title="Offline edit")
        session.notify_edit()
        await asyncio.sleep(0.05)
        assert hub.record(WORKFLOW_ID).version == 0

        transport.reconnect()
        assert session.state == SessionState.READY
        await asyncio.sleep(0.05)
        assert hub.record(WORKFLOW_ID).version == 0
        assert not session.has_pending_edit

        result = await session.flush()
        assert isinstance(result, SavedResult)
        assert hub.record(WORKFLOW_ID).steps[0]["title"] == "Offline edit"
        await session.close()

    asyncio.run(scenario())


def test_save_failure_is_transient(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])

    class FlakyTransport(LocalTransport):
        failures = 1

        async def save(
            self, workflow_id: str, snapshot: dict[str, Any], expected_version: int
        ) -> SaveResult:
            if self.failures:
                self.failures -= 1
                raise TransportError("timeout")
            return await super().save(workflow_id, snapshot, expected_version)

    async def scenario() -> None:
        session = CollaborationSession(
            graph, FlakyTransport(hub), version=0, config=fast_session_config
        )
        await session.start()

        assert await session.flush() is None
        assert session.state == SessionState.ERROR
        assert session.status.message == "Connection lost: timeout"

        session.notify_edit()
        await asyncio.sleep(0.05)
        assert session.state == SessionState.READY
        assert hub.record(WORKFLOW_ID).version == 1
        await session.close()

    asyncio.run(scenario())


def test_rejected_snapshot_reports_errors(
    hub: WorkflowHub, age_workflow_json: dict[str, Any]
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])
    hub.limits.max_title_length = 8

    async def scenario() -> None:
        session = CollaborationSession(graph, LocalTransport(hub), version=0)
        await session.start()
        result = await session.flush()

        assert result is not None and result.status == "error"
        assert session.state == SessionState.READY
        assert session.status.kind == "error"
        assert session.last_errors == ["Step 2: Title is too long (max 8 characters)"]
        assert session.version == 0
        await session.close()

    asyncio.run(scenario())


def test_edit_during_save_is_resubmitted_once(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])

    async def scenario() -> None:
        transport = GatedTransport(LocalTransport(hub))
        session = CollaborationSession(graph, transport, version=0, config=fast_session_config)
        await session.start()

        graph.update_step("0", title="First")
        pending = asyncio.create_task(session.flush())
        await asyncio.sleep(0.01)
        assert session.state == SessionState.SAVING

        graph.update_step("0", title="Second")
        session.notify_edit()
        await asyncio.sleep(0.04)
        transport.gate.set()
        result = await pending

        assert isinstance(result, SavedResult)
        assert transport.submitted == [("First", 0), ("Second", 1)]
        assert hub.record(WORKFLOW_ID).version == 2
        await session.close()

    asyncio.run(scenario())


def test_dismiss_and_refresh(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"], version=1)

    async def scenario() -> None:
        session = CollaborationSession(
            graph, LocalTransport(hub), version=0, config=fast_session_config
        )
        await session.start()
        with pytest.raises(IllegalTransitionError):
            session.dismiss()

        await session.flush()
        session.dismiss()
        assert session.state == SessionState.READY
        assert session.status.neutral
        assert session.version == 0

        await session.flush()
        fresh = await session.refresh()
        assert fresh.version == 1
        assert fresh.steps[0].title == "Ask age"
        assert session.state == SessionState.CLOSED
        with pytest.raises(IllegalTransitionError):
            session.notify_edit()

    asyncio.run(scenario())


def test_wait_until_connected_requires_start(
    hub: WorkflowHub, age_workflow_json: dict[str, Any]
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])

    async def scenario() -> None:
        session = CollaborationSession(graph, LocalTransport(hub), version=0)
        with pytest.raises(RuntimeError):
            await session.wait_until_connected()
        await session.start()
        await asyncio.wait_for(session.wait_until_connected(), timeout=1)
        await session.close()

    asyncio.run(scenario())


def test_fragment_and_variables_fall_back_to_local(
    hub: WorkflowHub, age_workflow_json: dict[str, Any]
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])
    graph.add_step(StepType.QUESTION, payload={"title": "Ask name", "variable_name": "name"})

    async def scenario() -> None:
        transport = LocalTransport(hub)
        session = CollaborationSession(graph, transport, version=0)

        assert await session.available_variables() == ["age", "name"]
        online = await session.step_fragment("message", 4, {"title": "Hi"})

        transport.connected = False
        assert await session.available_variables() == ["age", "name"]
        offline = await session.step_fragment("message", 4, {"title": "Hi"})

        assert offline == online
        assert 'data-step-type="message"' in offline

    asyncio.run(scenario())


def test_session_started_offline_recovers_on_next_edit(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])

    async def scenario() -> None:
        transport = LocalTransport(hub, user="alice")
        transport.disconnect()
        session = CollaborationSession(graph, transport, version=0, config=fast_session_config)
        await session.start()
        assert session.state == SessionState.ERROR
        assert session.status.kind == "error"

        transport.reconnect()
        graph.update_step("0", title="Back online")
        session.notify_edit()
        await asyncio.sleep(0.2)

        await asyncio.wait_for(session.wait_until_connected(), timeout=1)
        assert session.state == SessionState.READY
        assert hub.record(WORKFLOW_ID).version == 1
        assert hub.record(WORKFLOW_ID).steps[0]["title"] == "Back online"
        assert hub.active_users(WORKFLOW_ID) == ["alice"]
        await session.close()

    asyncio.run(scenario())


def test_failed_resubscribe_keeps_retrying(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])

    async def scenario() -> None:
        transport = LocalTransport(hub)
        transport.disconnect()
        session = CollaborationSession(graph, transport, version=0, config=fast_session_config)
        await session.start()

        assert await session.flush() is None
        assert hub.record(WORKFLOW_ID).version == 0

        transport.reconnect()
        result = await session.flush()
        assert isinstance(result, SavedResult)
        assert result.version == 1
        await session.close()

    asyncio.run(scenario())


def test_save_failure_returns_to_ready_when_status_clears(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])

    class DroppingTransport(LocalTransport):
        async def save(
            self, workflow_id: str, snapshot: dict[str, Any], expected_version: int
        ) -> SaveResult:
            raise TransportError("timeout")

    async def scenario() -> None:
        session = CollaborationSession(
            graph, DroppingTransport(hub), version=0, config=fast_session_config
        )
        await session.start()
        assert await session.flush() is None
        assert session.state == SessionState.ERROR

        await asyncio.sleep(0.1)
        assert session.status.neutral
        assert session.state == SessionState.READY
        await session.close()

    asyncio.run(scenario())


def test_disconnected_session_stays_in_error_after_status_clears(
    hub: WorkflowHub, age_workflow_json: dict[str, Any], fast_session_config: SessionConfig
) -> None:
    graph = _seed(hub, age_workflow_json["steps"])

    async def scenario() -> None:
        transport = LocalTransport(hub)
        session = CollaborationSession(graph, transport, version=0, config=fast_session_config)
        await session.start()
        transport.disconnect()

        await asyncio.sleep(0.1)
        assert session.status.neutral
        assert session.state == SessionState.ERROR

        transport.reconnect()
        assert session.state == SessionState.READY
        await session.close()

    asyncio.run(scenario())
