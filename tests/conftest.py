"""Test configuration and fixtures."""

from pathlib import Path
from typing import Any

import pytest

from workflow_studio.core.config import LimitsConfig, SessionConfig
from workflow_studio.model.steps import Workflow
from workflow_studio.persistence.hub import WorkflowHub
from workflow_studio.persistence.store import WorkflowStore


@pytest.fixture
def age_workflow_json() -> dict[str, Any]:
    """Legacy workflow: ask for an age, then route adults and minors."""
    return {
        "id": "wf-age",
        "title": "Age check",
        "steps": [
            {
                "type": "question",
                "title": "Ask age",
                "question": "How old are you?",
                "answer_type": "number",
                "variable_name": "age",
            },
            {
                "type": "decision",
                "title": "Check age",
                "branches": [
                    {"condition": "age >= 18", "path": "Adult"},
                    {"condition": "age < 18", "path": "Minor"},
                ],
            },
            {"type": "message", "title": "Adult", "content": "Welcome"},
            {"type": "resolve", "title": "Minor", "resolution_type": "failure"},
        ],
    }


@pytest.fixture
def age_workflow(age_workflow_json: dict[str, Any]) -> Workflow:
    return Workflow.from_json(age_workflow_json)


@pytest.fixture
def graph_workflow_json() -> dict[str, Any]:
    """Graph-mode workflow addressed by UUID transitions."""
    return {
        "id": "wf-graph",
        "title": "Support triage",
        "graph_mode": True,
        "steps": [
            {
                "id": "s-ask",
                "type": "question",
                "title": "Ask severity",
                "answer_type": "multiple_choice",
                "variable_name": "severity",
                "options": [{"value": "low"}, {"value": "high"}],
                "transitions": [{"target_uuid": "s-route"}],
            },
            {
                "id": "s-route",
                "type": "decision",
                "title": "Route",
                "transitions": [
                    {"target_uuid": "s-escalate", "condition": "severity == 'high'", "label": "High"},
                    {"target_uuid": "s-done", "condition": "", "label": "Otherwise"},
                ],
            },
            {
                "id": "s-escalate",
                "type": "escalate",
                "title": "Escalate",
                "transitions": [{"target_uuid": "s-done"}],
            },
            {"id": "s-done", "type": "resolve", "title": "Done"},
        ],
    }


@pytest.fixture
def graph_workflow(graph_workflow_json: dict[str, Any]) -> Workflow:
    return Workflow.from_json(graph_workflow_json)


@pytest.fixture
def store(tmp_path: Path) -> WorkflowStore:
    """Provide a workflow store in a temporary directory."""
    return WorkflowStore(tmp_path / ".workflows" / "workflows.json")


@pytest.fixture
def hub(store: WorkflowStore) -> WorkflowHub:
    return WorkflowHub(store=store, limits=LimitsConfig())


@pytest.fixture
def fast_session_config() -> SessionConfig:
    """Short timers so session tests run quickly."""
    return SessionConfig(debounce_ms=20, saved_status_seconds=0.05, error_status_seconds=0.05)
