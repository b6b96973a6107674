"""Draft and publish validation.

Draft validation only produces warnings: incomplete work is always savable.
Publish validation produces errors that block publishing.
"""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from workflow_studio.core.config import LimitsConfig

from .conditions import condition_problems
from .edges import EdgeKind
from .errors import ValidationError
from .graph import StepGraph
from .steps import Step, StepType, Workflow

_LARGE_TEXT_FIELDS = ("question", "instructions", "checkpoint_message")

WorkflowLookup = Callable[[str], Workflow | None]


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _step_label(graph: StepGraph, step: Step) -> str:
    return f"Step {graph.index_of(step.id) + 1}"


def is_incomplete_decision(step: Step) -> bool:
    """A decision with no configured branch, transition or legacy path."""

    if not step.is_decision:
        return False
    return not any(
        e.has_target
        for e in step.edges_of(
            EdgeKind.BRANCH, EdgeKind.YES, EdgeKind.NO, EdgeKind.ELSE, EdgeKind.TRANSITION
        )
    )


def _condition_messages(graph: StepGraph, *, strict: bool) -> list[str]:
    registry = graph.registry
    messages: list[str] = []
    for step in graph.steps:
        seen_legacy = False
        for edge_index, edge in enumerate(step.edges):
            if not edge.condition:
                continue
            if edge.kind in {EdgeKind.YES, EdgeKind.NO}:
                # Both legacy edges carry the same condition.
                if seen_legacy:
                    continue
                seen_legacy = True
                where = f"{_step_label(graph, step)}, condition"
            else:
                where = f"{_step_label(graph, step)}, {edge.kind.value} {edge_index + 1}"
            for problem in condition_problems(edge.condition, registry, strict=strict):
                messages.append(f"{where}: {problem}")
    return messages


def validate_draft(graph: StepGraph) -> ValidationReport:
    report = ValidationReport()
    for step in graph.steps:
        if is_incomplete_decision(step):
            report.warnings.append(f"{_step_label(graph, step)}: decision has no branches yet")
    report.warnings.extend(str(d) for d in graph.dangling_references())
    report.warnings.extend(_condition_messages(graph, strict=False))
    return report


def size_problems(workflow: Workflow, limits: LimitsConfig) -> list[str]:
    problems: list[str] = []
    if len(workflow.steps) > limits.max_steps:
        return [f"Workflow cannot exceed {limits.max_steps} steps (currently {len(workflow.steps)})"]

    for index, step in enumerate(workflow.steps):
        label = f"Step {index + 1}"
        if len(step.title) > limits.max_title_length:
            problems.append(f"{label}: Title is too long (max {limits.max_title_length} characters)")
        texts = [step.description] + [str(step.payload.get(k) or "") for k in _LARGE_TEXT_FIELDS]
        if any(len(t.encode("utf-8")) > limits.max_content_bytes for t in texts):
            problems.append(f"{label}: Text content is too large (max {limits.max_content_bytes} bytes)")
        if len(step.edges) > limits.max_branches:
            problems.append(f"{label}: Too many branches (max {limits.max_branches})")
        options = step.payload.get("options")
        if isinstance(options, list) and len(options) > limits.max_options:
            problems.append(f"{label}: Too many options (max {limits.max_options})")
    return problems


def snapshot_size_problems(snapshot: dict[str, object], limits: LimitsConfig) -> list[str]:
    """Size checks on a raw snapshot, before it is parsed."""

    steps = snapshot.get("steps")
    if isinstance(steps, list) and len(steps) > limits.max_steps:
        return [f"Workflow cannot exceed {limits.max_steps} steps (currently {len(steps)})"]
    total = len(json.dumps(snapshot, default=str).encode("utf-8"))
    limit = limits.max_steps * limits.max_content_bytes
    if total > limit:
        return [f"Total workflow data is too large ({total} bytes, max {limit})"]
    return []


def structure_problems(graph: StepGraph) -> list[str]:
    """Graph-mode checks: integrity, acyclic, reachable from the first step, terminated."""

    steps = graph.steps
    if not steps:
        return ["Workflow has no steps"]

    by_id = {s.id: s for s in steps}
    adjacency: dict[str, list[str]] = {
        s.id: [e.target for e in s.edges_of(EdgeKind.TRANSITION) if e.target in by_id]
        for s in steps
    }
    problems: list[str] = []

    # Cycle detection: white/gray/black DFS, stops at the first cycle found.
    colors: dict[str, str] = {}
    path: list[str] = []

    def visit(node: str) -> list[str] | None:
        colors[node] = "gray"
        path.append(node)
        for target in adjacency[node]:
            state = colors.get(target, "white")
            if state == "gray":
                return path[path.index(target) :] + [target]
            if state == "white":
                cycle = visit(target)
                if cycle:
                    return cycle
        path.pop()
        colors[node] = "black"
        return None

    for step in steps:
        if colors.get(step.id, "white") == "white":
            cycle = visit(step.id)
            if cycle:
                titles = " -> ".join(by_id[n].title or n for n in cycle)
                problems.append(f"Cycle detected: {titles}")
                break

    start = steps[0].id
    reachable: set[str] = set()
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        if current in reachable:
            continue
        reachable.add(current)
        queue.extend(t for t in adjacency[current] if t not in reachable)
    for step in steps:
        if step.id not in reachable:
            problems.append(f"Step '{step.title or step.id}' is not reachable from the start step")

    if not any(not adjacency[s.id] for s in steps):
        problems.append("No terminal steps found - workflow has no ending point")
    return problems


def validate_for_publish(
    graph: StepGraph,
    limits: LimitsConfig | None = None,
    *,
    strict_conditions: bool = False,
) -> ValidationReport:
    report = ValidationReport()
    limits = limits or LimitsConfig()

    titles: dict[str, int] = {}
    for step in graph.steps:
        label = _step_label(graph, step)
        if not step.title:
            report.errors.append(f"{label}: Title is required")
        else:
            titles[step.title] = titles.get(step.title, 0) + 1

        if step.type == StepType.RESOLVE and step.explicit_edges():
            report.errors.append(f"{label}: Resolve steps cannot have outgoing edges")

        if is_incomplete_decision(step):
            report.errors.append(f"{label}: Decision has no branches")

        for edge_index, edge in enumerate(step.edges_of(EdgeKind.BRANCH)):
            if edge.condition and not edge.has_target:
                report.errors.append(
                    f"{label}, Branch {edge_index + 1}: Path is required when a condition is set"
                )
            if edge.has_target and not edge.condition:
                report.errors.append(
                    f"{label}, Branch {edge_index + 1}: Condition is required when a path is selected"
                )

    if not graph.graph_mode:
        for title, count in titles.items():
            if count > 1:
                report.errors.append(f"Step title {title!r} is used by {count} steps")

    report.errors.extend(str(d) for d in graph.dangling_references())
    report.errors.extend(_condition_messages(graph, strict=strict_conditions))
    report.errors.extend(size_problems(graph.to_workflow(), limits))
    if graph.graph_mode:
        report.errors.extend(structure_problems(graph))
    return report


def ensure_publishable(
    graph: StepGraph, limits: LimitsConfig | None = None, *, strict_conditions: bool = False
) -> None:
    """Raise :class:`ValidationError` unless the graph can be published."""

    report = validate_for_publish(graph, limits, strict_conditions=strict_conditions)
    if not report.ok:
        raise ValidationError(errors=report.errors)


def subflow_problems(
    workflow: Workflow, lookup: WorkflowLookup, *, max_depth: int = 10
) -> list[str]:
    """Circular sub-flow references and nesting deeper than ``max_depth``.

    ``lookup`` resolves a workflow id to its stored content. Ids it cannot
    resolve are skipped. A workflow without sub-flows has depth 1.
    """

    problems: list[str] = []
    cache: dict[str, Workflow | None] = {workflow.id: workflow}

    def resolve(workflow_id: str) -> Workflow | None:
        if workflow_id not in cache:
            cache[workflow_id] = lookup(workflow_id)
        return cache[workflow_id]

    def name(workflow_id: str) -> str:
        found = resolve(workflow_id)
        if found is not None and found.title:
            return found.title
        return f"Workflow {workflow_id}"

    def find_cycles(current: Workflow, path: list[str]) -> None:
        if current.id in path:
            cycle = path[path.index(current.id) :] + [current.id]
            message = "Circular sub-flow reference: " + " -> ".join(name(i) for i in cycle)
            if message not in problems:
                problems.append(message)
            return
        for target_id in current.referenced_workflow_ids():
            target = resolve(target_id)
            if target is not None:
                find_cycles(target, path + [current.id])

    def depth(current: Workflow | None, ancestors: frozenset[str]) -> int:
        if current is None or current.id in ancestors:
            return 0
        children = current.referenced_workflow_ids()
        if not children or len(ancestors) >= max_depth:
            # Past the limit the exact depth no longer matters.
            return 1
        seen = ancestors | {current.id}
        return 1 + max(depth(resolve(t), seen) for t in children)

    find_cycles(workflow, [])
    if depth(workflow, frozenset()) > max_depth:
        problems.append(f"Sub-flow nesting exceeds maximum depth of {max_depth} levels")
    return problems
