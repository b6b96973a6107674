"""Unit tests for draft and publish validation."""

from __future__ import annotations

from typing import Any

import pytest

from workflow_studio.core.config import LimitsConfig
from workflow_studio.model.edges import OutgoingEdge
from workflow_studio.model.errors import ValidationError
from workflow_studio.model.graph import StepGraph
from workflow_studio.model.steps import Step, StepType, Workflow
from workflow_studio.model.validation import (
    ensure_publishable,
    is_incomplete_decision,
    size_problems,
    snapshot_size_problems,
    structure_problems,
    subflow_problems,
    validate_draft,
    validate_for_publish,
)


def _legacy(*steps: Step) -> StepGraph:
    return StepGraph(Workflow(id="wf", steps=list(steps)))


def test_complete_workflows_are_publishable(
    age_workflow: Workflow, graph_workflow: Workflow
) -> None:
    for workflow in (age_workflow, graph_workflow):
        report = validate_for_publish(StepGraph(workflow))
        assert report.errors == []
        ensure_publishable(StepGraph(workflow))


def test_incomplete_decision_is_only_a_draft_warning() -> None:
    graph = _legacy(
        Step(id="", type=StepType.DECISION, title="D", edges=[OutgoingEdge.branch()]),
    )
    assert is_incomplete_decision(graph.get("0"))

    draft = validate_draft(graph)
    assert draft.ok
    assert draft.warnings == ["Step 1: decision has no branches yet"]

    publish = validate_for_publish(graph)
    assert "Step 1: Decision has no branches" in publish.errors


def test_dangling_reference_warns_in_draft_and_blocks_publish(age_workflow: Workflow) -> None:
    graph = StepGraph(age_workflow)
    graph.remove_step("2")

    draft = validate_draft(graph)
    assert draft.ok
    assert any("missing step 'Adult'" in w for w in draft.warnings)

    with pytest.raises(ValidationError) as exc:
        ensure_publishable(graph)
    assert any("missing step 'Adult'" in e for e in exc.value.errors)


def test_resolve_step_with_outgoing_edge_blocks_publish() -> None:
    graph = _legacy(
        Step(id="", type=StepType.RESOLVE, title="End", edges=[OutgoingEdge.otherwise("Start")]),
        Step(id="", type=StepType.ACTION, title="Start"),
    )
    assert validate_draft(graph).ok
    assert "Step 1: Resolve steps cannot have outgoing edges" in validate_for_publish(graph).errors


def test_branch_condition_and_path_must_come_together() -> None:
    graph = _legacy(
        Step(id="", type=StepType.QUESTION, title="Q", payload={"variable_name": "a"}),
        Step(
            id="",
            type=StepType.DECISION,
            title="D",
            edges=[OutgoingEdge.branch("a == '1'", ""), OutgoingEdge.branch("", "Q")],
        ),
    )
    errors = validate_for_publish(graph).errors

    assert "Step 2, Branch 1: Path is required when a condition is set" in errors
    assert "Step 2, Branch 2: Condition is required when a path is selected" in errors


def test_condition_problems_are_warnings_in_draft_errors_at_publish() -> None:
    graph = _legacy(
        Step(id="", type=StepType.ACTION, title="A"),
        Step(
            id="",
            type=StepType.DECISION,
            title="D",
            edges=[OutgoingEdge.branch("color == 'red'", "A")],
        ),
    )
    expected = "Step 2, branch 1: Unknown variable: color"

    assert expected in validate_draft(graph).warnings
    assert expected in validate_for_publish(graph).errors


def test_strict_publish_rejects_type_mismatch() -> None:
    graph = _legacy(
        Step(id="", type=StepType.QUESTION, title="Q", payload={"variable_name": "name"}),
        Step(id="", type=StepType.DECISION, title="D", edges=[OutgoingEdge.branch("name > 'm'", "Q")]),
    )
    assert validate_for_publish(graph).ok
    assert not validate_for_publish(graph, strict_conditions=True).ok


def test_missing_and_duplicate_titles_in_legacy_mode() -> None:
    graph = _legacy(
        Step(id="", type=StepType.ACTION, title=""),
        Step(id="", type=StepType.ACTION, title="Same"),
        Step(id="", type=StepType.RESOLVE, title="Same"),
    )
    errors = validate_for_publish(graph).errors

    assert "Step 1: Title is required" in errors
    assert "Step title 'Same' is used by 2 steps" in errors


def test_size_limits(age_workflow: Workflow) -> None:
    assert size_problems(age_workflow, LimitsConfig()) == []
    assert size_problems(age_workflow, LimitsConfig(max_steps=2)) == [
        "Workflow cannot exceed 2 steps (currently 4)"
    ]

    age_workflow.steps[0].title = "x" * 30
    assert size_problems(age_workflow, LimitsConfig(max_title_length=10)) == [
        "Step 1: Title is too long (max 10 characters)"
    ]


def test_snapshot_size_problems(age_workflow_json: dict[str, Any]) -> None:
    assert snapshot_size_problems(age_workflow_json, LimitsConfig()) == []
    assert snapshot_size_problems(age_workflow_json, LimitsConfig(max_steps=3)) == [
        "Workflow cannot exceed 3 steps (currently 4)"
    ]
    tiny = LimitsConfig(max_steps=10, max_content_bytes=10)
    problems = snapshot_size_problems(age_workflow_json, tiny)
    assert len(problems) == 1
    assert problems[0].startswith("Total workflow data is too large")


def test_structure_detects_cycles_and_missing_terminal(graph_workflow: Workflow) -> None:
    graph_workflow.steps[3].edges = [OutgoingEdge.transition("s-ask")]
    problems = structure_problems(StepGraph(graph_workflow))

    assert problems[0] == "Cycle detected: Ask severity -> Route -> Escalate -> Done -> Ask severity"
    assert "No terminal steps found - workflow has no ending point" in problems


def test_structure_detects_unreachable_steps(graph_workflow: Workflow) -> None:
    graph_workflow.steps.append(Step(id="s-orphan", type=StepType.MESSAGE, title="Orphan"))
    problems = structure_problems(StepGraph(graph_workflow))

    assert problems == ["Step 'Orphan' is not reachable from the start step"]


def test_structure_of_empty_graph() -> None:
    assert structure_problems(StepGraph(Workflow(id="wf", graph_mode=True))) == [
        "Workflow has no steps"
    ]


def _flow(workflow_id: str, *targets: str) -> Workflow:
    steps = [
        Step(id=str(i), type=StepType.SUB_FLOW, title=f"Run {t}", payload={"target_workflow_id": t})
        for i, t in enumerate(targets)
    ]
    return Workflow(id=workflow_id, title=f"Flow {workflow_id}", steps=steps)


def test_subflow_cycle_is_reported_with_titles() -> None:
    flows = {"a": _flow("a", "b"), "b": _flow("b", "c"), "c": _flow("c", "a")}

    problems = subflow_problems(flows["a"], flows.get)

    assert problems == ["Circular sub-flow reference: Flow a -> Flow b -> Flow c -> Flow a"]


def test_subflow_self_reference_and_unknown_targets() -> None:
    flow = _flow("a", "a", "missing")

    assert subflow_problems(flow, {"a": flow}.get) == [
        "Circular sub-flow reference: Flow a -> Flow a"
    ]


def test_subflow_depth_limit() -> None:
    def chain(length: int) -> dict[str, Workflow]:
        flows = {f"w{i}": _flow(f"w{i}", f"w{i + 1}") for i in range(length - 1)}
        flows[f"w{length - 1}"] = _flow(f"w{length - 1}")
        return flows

    within = chain(10)
    assert subflow_problems(within["w0"], within.get, max_depth=10) == []

    too_deep = chain(11)
    assert subflow_problems(too_deep["w0"], too_deep.get, max_depth=10) == [
        "Sub-flow nesting exceeds maximum depth of 10 levels"
    ]
