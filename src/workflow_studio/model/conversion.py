"""Convert legacy (title-addressed, sequential) workflows to graph mode."""

from __future__ import annotations

import copy
import logging

from .conditions import negate, parse
from .edges import EdgeKind, OutgoingEdge
from .errors import ConversionError, ParseError
from .graph import StepGraph
from .steps import Step, StepType, Workflow, new_step_id
from .validation import structure_problems

logger = logging.getLogger(__name__)


def negate_condition(condition: str) -> str:
    """Inverse of a condition, used for the legacy false path.

    Returns an empty condition when ``condition`` does not parse, so the false
    path becomes an unconditional fallback.
    """

    if not condition.strip():
        return ""
    try:
        return str(negate(parse(condition)))
    except ParseError:
        logger.warning("Cannot negate condition", extra={"condition": condition})
        return ""


def convert_to_graph_mode(workflow: Workflow) -> Workflow:
    """Return a graph-mode copy of ``workflow``.

    Raises:
        ConversionError: If a path cannot be resolved or the result is not a
            valid graph.
    """

    if workflow.graph_mode:
        return copy.deepcopy(workflow)
    if not workflow.steps:
        raise ConversionError(errors=["Workflow has no steps"])

    steps = [copy.deepcopy(s) for s in workflow.steps]
    ids = [new_step_id() for _ in steps]
    by_title: dict[str, str] = {}
    for step, step_id in zip(steps, ids, strict=True):
        if step.title and step.title not in by_title:
            by_title[step.title] = step_id

    errors: list[str] = []

    def resolve(step: Step, path: str) -> str | None:
        target = by_title.get(path.strip())
        if target is None:
            errors.append(f"Step '{step.title}': path '{path}' could not be resolved")
        return target

    converted: list[Step] = []
    for index, (step, step_id) in enumerate(zip(steps, ids, strict=True)):
        next_id = ids[index + 1] if index + 1 < len(ids) else None
        transitions: list[OutgoingEdge] = []

        if step.type == StepType.DECISION:
            for edge in step.edges:
                if not edge.has_target:
                    continue
                target = resolve(step, edge.target)
                if target is None:
                    continue
                if edge.kind == EdgeKind.BRANCH:
                    transitions.append(
                        OutgoingEdge.transition(target, edge.condition, f"If {edge.condition}")
                    )
                elif edge.kind == EdgeKind.YES:
                    transitions.append(
                        OutgoingEdge.transition(target, edge.condition or "", "If true")
                    )
                elif edge.kind == EdgeKind.NO:
                    negated = negate_condition(edge.condition)
                    label = "If false" if negated else "Else"
                    transitions.append(OutgoingEdge.transition(target, negated, label))
            otherwise = [e for e in step.edges if e.kind == EdgeKind.ELSE and e.has_target]
            # Else always goes last so it only applies when nothing else matched.
            transitions = [t for t in transitions if t.condition] + [
                t for t in transitions if not t.condition
            ]
            for edge in otherwise:
                target = resolve(step, edge.target)
                if target is not None:
                    transitions.append(OutgoingEdge.transition(target, "", "Else"))
            if not transitions and next_id is not None:
                transitions.append(OutgoingEdge.transition(next_id, "", "Default"))
        elif step.type == StepType.SUB_FLOW:
            if next_id is not None:
                transitions.append(OutgoingEdge.transition(next_id, "", "After sub-flow"))
        elif step.type not in {StepType.CHECKPOINT, StepType.RESOLVE} and next_id is not None:
            transitions.append(OutgoingEdge.transition(next_id))

        converted.append(
            Step(
                id=step_id,
                type=step.type,
                title=step.title,
                description=step.description,
                payload=step.payload,
                edges=transitions,
            )
        )

    result = Workflow(
        id=workflow.id,
        title=workflow.title,
        description=workflow.description,
        version=workflow.version,
        graph_mode=True,
        status=workflow.status,
        steps=converted,
    )

    errors.extend(structure_problems(StepGraph(result)))
    if errors:
        logger.warning(
            "Graph conversion failed", extra={"workflow_id": workflow.id, "errors": len(errors)}
        )
        raise ConversionError(errors=errors)
    return result
