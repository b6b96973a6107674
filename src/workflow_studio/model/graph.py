"""The step graph owned by an editor session.

Steps are ordered. Edges are stored on their source step as
:class:`~workflow_studio.model.edges.OutgoingEdge` values and resolved into a
drawable edge set on demand. Removing or renaming a step never rewrites edges
that point at it: the stored target is kept and reported as dangling.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .edges import EdgeKind, OutgoingEdge
from .errors import DanglingReferenceError, StepNotFoundError
from .steps import Step, StepType, Workflow, new_step_id
from .variables import VariableRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedEdge:
    """A drawable edge between two step identities."""

    source: str
    target: str
    kind: EdgeKind
    label: str = ""
    branch_index: int = 0
    condition: str = ""

    @property
    def is_sequential(self) -> bool:
        return self.kind == EdgeKind.SEQUENTIAL


@dataclass(frozen=True, slots=True)
class TargetOption:
    """One entry of an edge-target selector."""

    value: str
    label: str
    selected: bool
    valid: bool


_PAYLOAD_FIELDS_AFFECTING_VARIABLES = {"variable_name", "answer_type", "options"}


class StepGraph:
    """Ordered steps plus the edges between them.

    Every mutation bumps :attr:`revision`; the variable registry is cached
    against it.
    """

    def __init__(self, workflow: Workflow) -> None:
        self.workflow_id = workflow.id
        self.title = workflow.title
        self.description = workflow.description
        self.graph_mode = workflow.graph_mode
        self.status = workflow.status
        self._steps: list[Step] = [copy.deepcopy(s) for s in workflow.steps]
        self._revision = 0
        self._registry: VariableRegistry | None = None
        self._registry_revision = -1
        self._reindex()
        self._check_unique_ids()

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> StepGraph:
        return cls(workflow)

    def to_workflow(self, *, version: int = 0) -> Workflow:
        return Workflow(
            id=self.workflow_id,
            title=self.title,
            description=self.description,
            version=version,
            graph_mode=self.graph_mode,
            status=self.status,
            steps=[copy.deepcopy(s) for s in self._steps],
        )

    # -- reading -----------------------------------------------------------

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def get(self, step_id: str) -> Step:
        for step in self._steps:
            if step.id == step_id:
                return step
        raise StepNotFoundError(step_id)

    def index_of(self, step_id: str) -> int:
        for index, step in enumerate(self._steps):
            if step.id == step_id:
                return index
        raise StepNotFoundError(step_id)

    def find_by_title(self, title: str) -> Step | None:
        wanted = title.strip()
        for step in self._steps:
            if step.title == wanted:
                return step
        return None

    def resolve_target(self, edge: OutgoingEdge) -> Step | None:
        """The step an edge points at, or None when empty or dangling."""

        if not edge.has_target:
            return None
        if edge.addressed_by_title:
            return self.find_by_title(edge.target)
        for step in self._steps:
            if step.id == edge.target:
                return step
        return None

    @property
    def registry(self) -> VariableRegistry:
        if self._registry is None or self._registry_revision != self._revision:
            self._registry = VariableRegistry.from_steps(self._steps)
            self._registry_revision = self._revision
            logger.debug(
                "Variable registry rebuilt",
                extra={"revision": self._revision, "variables": len(self._registry)},
            )
        return self._registry

    # -- mutation ----------------------------------------------------------

    def _touch(self) -> None:
        self._revision += 1

    def _check_unique_ids(self) -> None:
        seen: set[str] = set()
        for step in self._steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step identity: {step.id}")
            seen.add(step.id)

    def _reindex(self) -> None:
        if self.graph_mode:
            return
        for index, step in enumerate(self._steps):
            step.id = str(index)

    def add_step(
        self,
        step_type: StepType | str,
        at_index: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Step:
        """Insert a new step and return it.

        Decision steps start with one empty branch (one empty transition in
        graph mode).
        """

        kind = StepType(step_type)
        data = dict(payload or {})
        title = str(data.pop("title", "") or "").strip()
        description = str(data.pop("description", "") or "")

        edges: list[OutgoingEdge] = []
        if kind == StepType.DECISION:
            edges.append(OutgoingEdge.transition() if self.graph_mode else OutgoingEdge.branch())

        step = Step(
            id=new_step_id() if self.graph_mode else "",
            type=kind,
            title=title,
            description=description,
            payload=data,
            edges=edges,
        )

        position = len(self._steps) if at_index is None else max(0, min(at_index, len(self._steps)))
        self._steps.insert(position, step)
        self._reindex()
        self._touch()
        logger.debug("Step added", extra={"step_id": step.id, "step_type": kind.value})
        return step

    def remove_step(self, step_id: str) -> Step:
        """Remove a step. Edges that targeted it keep their stored value."""

        index = self.index_of(step_id)
        removed = self._steps.pop(index)
        self._reindex()
        self._touch()

        dangling = [
            d for d in self.dangling_references() if d.target in {removed.id, removed.title}
        ]
        if dangling:
            logger.info(
                "Removed step leaves dangling references",
                extra={"step_title": removed.title, "dangling": len(dangling)},
            )
        return removed

    def reorder(self, new_order: Sequence[str]) -> None:
        """Reorder steps by identity. ``new_order`` must be a permutation."""

        current = [s.id for s in self._steps]
        if sorted(new_order) != sorted(current) or len(set(new_order)) != len(new_order):
            raise ValueError("new_order must list every step identity exactly once")

        by_id = {s.id: s for s in self._steps}
        self._steps = [by_id[step_id] for step_id in new_order]
        self._reindex()
        self._touch()

    def update_step(self, step_id: str, **changes: Any) -> Step:
        """Update title/description and payload fields of a step.

        Renaming a step does not rewrite title-addressed references to it.
        """

        step = self.get(step_id)
        if "title" in changes:
            step.title = str(changes.pop("title") or "").strip()
        if "description" in changes:
            step.description = str(changes.pop("description") or "")
        if "type" in changes:
            step.type = StepType(changes.pop("type"))

        for key, value in changes.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                step.payload.pop(key, None)
            else:
                step.payload[key] = value

        self._touch()
        if _PAYLOAD_FIELDS_AFFECTING_VARIABLES & set(changes):
            logger.debug("Variable-affecting field changed", extra={"step_id": step_id})
        return step

    def set_edges(self, step_id: str, edges: Sequence[OutgoingEdge]) -> None:
        self.get(step_id).edges = list(edges)
        self._touch()

    def add_edge(self, step_id: str, edge: OutgoingEdge) -> None:
        step = self.get(step_id)
        if edge.kind == EdgeKind.ELSE:
            step.edges = [e for e in step.edges if e.kind != EdgeKind.ELSE]
        step.edges.append(edge)
        self._touch()

    def replace_edge(self, step_id: str, edge_index: int, edge: OutgoingEdge) -> None:
        step = self.get(step_id)
        step.edges[edge_index] = edge
        self._touch()

    def remove_edge(self, step_id: str, edge_index: int) -> OutgoingEdge:
        step = self.get(step_id)
        removed = step.edges.pop(edge_index)
        self._touch()
        return removed

    # -- edges -------------------------------------------------------------

    def dangling_references(self) -> list[DanglingReferenceError]:
        found: list[DanglingReferenceError] = []
        for step in self._steps:
            for edge_index, edge in enumerate(step.edges):
                if edge.has_target and self.resolve_target(edge) is None:
                    found.append(
                        DanglingReferenceError(
                            step_id=step.id,
                            edge_index=edge_index,
                            target=edge.target,
                            kind=edge.kind.value,
                        )
                    )
        return found

    def target_options(self, step_id: str, edge_index: int) -> list[TargetOption]:
        """Options for an edge-target selector.

        A dangling stored value stays in the list as selected but invalid.
        """

        step = self.get(step_id)
        edge = step.edges[edge_index]
        options: list[TargetOption] = []
        matched = False
        for candidate in self._steps:
            if candidate.id == step.id:
                continue
            value = candidate.title if edge.addressed_by_title else candidate.id
            selected = edge.has_target and value == edge.target
            matched = matched or selected
            options.append(
                TargetOption(
                    value=value,
                    label=candidate.title or f"Step {self.index_of(candidate.id) + 1}",
                    selected=selected,
                    valid=True,
                )
            )
        if edge.has_target and not matched:
            options.append(
                TargetOption(
                    value=edge.target,
                    label=f"{edge.target} (missing)",
                    selected=True,
                    valid=False,
                )
            )
        return options

    def resolve_edges(self) -> list[ResolvedEdge]:
        """Derive the drawable edge set.

        Edges with empty or dangling targets are not drawn.
        """

        resolved: list[ResolvedEdge] = []
        for step in self._steps:
            resolved.extend(self._explicit_edges(step))

        if self.graph_mode:
            return resolved

        sources_by_target: dict[str, set[str]] = {}
        for edge in resolved:
            sources_by_target.setdefault(edge.target, set()).add(edge.source)

        for index in range(len(self._steps) - 1):
            current = self._steps[index]
            following = self._steps[index + 1]
            if any(e.has_target for e in current.routing_edges()):
                continue
            other_sources = sources_by_target.get(following.id, set()) - {current.id}
            if other_sources:
                continue
            resolved.append(
                ResolvedEdge(source=current.id, target=following.id, kind=EdgeKind.SEQUENTIAL)
            )
        return resolved

    def _explicit_edges(self, step: Step) -> list[ResolvedEdge]:
        out: list[ResolvedEdge] = []
        branch_index = 0
        for edge in step.routing_edges():
            target = self.resolve_target(edge)
            if edge.kind == EdgeKind.BRANCH:
                index = branch_index
                branch_index += 1
                label = edge.condition or f"Branch {index + 1}"
            elif edge.kind == EdgeKind.ELSE:
                index = len(step.edges_of(EdgeKind.BRANCH))
                label = "Else"
            elif edge.kind == EdgeKind.YES:
                index, label = 0, "Yes"
            elif edge.kind == EdgeKind.NO:
                index, label = 1, "No"
            else:
                index = branch_index
                branch_index += 1
                label = edge.label or edge.condition
            if target is None:
                continue
            out.append(
                ResolvedEdge(
                    source=step.id,
                    target=target.id,
                    kind=edge.kind,
                    label=label,
                    branch_index=index,
                    condition=edge.condition,
                )
            )
        return out
