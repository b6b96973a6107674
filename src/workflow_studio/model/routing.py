"""Runtime routing: which step runs after the current one."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from .conditions import matches
from .edges import EdgeKind
from .errors import NoMatchingBranchError
from .graph import StepGraph
from .steps import StepType

logger = logging.getLogger(__name__)


def next_step(graph: StepGraph, step_id: str, bindings: Mapping[str, object]) -> str | None:
    """Return the identity of the next step, or None when ``step_id`` is terminal.

    A decision step takes at most one outgoing edge: the first branch whose
    condition holds, else its else-path.

    Raises:
        NoMatchingBranchError: A decision step with branches matched nothing and
            has no else-path.
    """

    step = graph.get(step_id)
    if step.type == StepType.RESOLVE:
        return None

    registry = graph.registry

    if graph.graph_mode:
        transitions = [e for e in step.edges_of(EdgeKind.TRANSITION) if e.has_target]
        for edge in transitions:
            if edge.condition and matches(edge.condition, bindings, registry):
                target = graph.resolve_target(edge)
                return target.id if target else None
        for edge in transitions:
            if not edge.condition:
                target = graph.resolve_target(edge)
                return target.id if target else None
        if step.type == StepType.DECISION and transitions:
            raise NoMatchingBranchError(step.id)
        return None

    branches = step.edges_of(EdgeKind.BRANCH)
    otherwise = next(iter(step.edges_of(EdgeKind.ELSE)), None)
    if step.is_decision and any(e.has_target for e in branches):
        for edge in branches:
            if edge.has_target and edge.condition and matches(edge.condition, bindings, registry):
                target = graph.resolve_target(edge)
                logger.debug(
                    "Branch matched", extra={"step_id": step.id, "condition": edge.condition}
                )
                return target.id if target else None
        if otherwise is not None and otherwise.has_target:
            target = graph.resolve_target(otherwise)
            return target.id if target else None
        raise NoMatchingBranchError(step.id)

    yes = next(iter(step.edges_of(EdgeKind.YES)), None)
    no = next(iter(step.edges_of(EdgeKind.NO)), None)
    if step.is_decision and (yes is not None or no is not None):
        condition = (yes or no).condition  # type: ignore[union-attr]
        chosen = yes if condition and matches(condition, bindings, registry) else no
        if chosen is not None and chosen.has_target:
            target = graph.resolve_target(chosen)
            return target.id if target else None

    index = graph.index_of(step.id)
    if index + 1 < len(graph):
        return graph.steps[index + 1].id
    return None
