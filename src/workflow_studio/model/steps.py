"""Workflow and step data model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .edges import EDGE_JSON_KEYS, EdgeKind, OutgoingEdge, edges_from_json, edges_to_json


class StepType(str, Enum):
    QUESTION = "question"
    DECISION = "decision"
    ACTION = "action"
    CHECKPOINT = "checkpoint"
    SUB_FLOW = "sub_flow"
    MESSAGE = "message"
    ESCALATE = "escalate"
    RESOLVE = "resolve"


# Keys owned by Step itself; everything else in a serialized step is payload.
_STEP_KEYS: frozenset[str] = frozenset({"id", "index", "type", "title", "description"}) | (
    EDGE_JSON_KEYS
)


def new_step_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class Step:
    """One typed node of a workflow.

    ``id`` is the step's identity: its position (as a string) under legacy
    mode, a UUID under graph mode.
    """

    id: str
    type: StepType
    title: str = ""
    description: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    edges: list[OutgoingEdge] = field(default_factory=list)

    @property
    def is_decision(self) -> bool:
        return self.type == StepType.DECISION

    @property
    def variable_name(self) -> str:
        return str(self.payload.get("variable_name") or "").strip()

    @property
    def answer_type(self) -> str:
        return str(self.payload.get("answer_type") or "").strip().lower()

    def edges_of(self, *kinds: EdgeKind) -> list[OutgoingEdge]:
        return [e for e in self.edges if e.kind in kinds]

    def explicit_edges(self) -> list[OutgoingEdge]:
        """Edges with a configured target (dangling targets included)."""
        return [e for e in self.edges if e.has_target]

    def routing_edges(self) -> list[OutgoingEdge]:
        """Edges that can route: branch, else and yes/no edges only count on decisions."""
        if self.is_decision:
            return list(self.edges)
        return self.edges_of(EdgeKind.TRANSITION)

    def to_json(self, *, index: int | None = None) -> dict[str, object]:
        out: dict[str, object] = dict(self.payload)
        out["id"] = self.id
        if index is not None:
            out["index"] = index
        out["type"] = self.type.value
        out["title"] = self.title
        out["description"] = self.description
        out.update(edges_to_json(self.edges))
        return out

    @staticmethod
    def from_json(raw: dict[str, Any], *, index: int, graph_mode: bool) -> Step:
        type_raw = str(raw.get("type") or "").strip()
        try:
            step_type = StepType(type_raw)
        except ValueError as e:
            raise ValueError(f"Step {index + 1}: invalid step type {type_raw!r}") from e

        if graph_mode:
            step_id = str(raw.get("id") or "").strip() or new_step_id()
        else:
            step_id = str(index)

        payload = {k: v for k, v in raw.items() if k not in _STEP_KEYS}
        return Step(
            id=step_id,
            type=step_type,
            title=str(raw.get("title") or "").strip(),
            description=str(raw.get("description") or ""),
            payload=payload,
            edges=edges_from_json(raw, graph_mode=graph_mode),
        )


@dataclass(slots=True)
class Workflow:
    id: str
    title: str = ""
    description: str = ""
    version: int = 0
    graph_mode: bool = False
    status: str = "draft"
    steps: list[Step] = field(default_factory=list)

    def content_json(self) -> dict[str, object]:
        """The snapshot submitted on save (everything except the version)."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "graph_mode": self.graph_mode,
            "status": self.status,
            "steps": [s.to_json(index=i) for i, s in enumerate(self.steps)],
        }

    def to_json(self) -> dict[str, object]:
        out = self.content_json()
        out["version"] = self.version
        return out

    def referenced_workflow_ids(self) -> list[str]:
        """Distinct ``target_workflow_id`` values of sub-flow steps, in step order."""
        ids: list[str] = []
        for step in self.steps:
            if step.type != StepType.SUB_FLOW:
                continue
            target = str(step.payload.get("target_workflow_id") or "").strip()
            if target and target not in ids:
                ids.append(target)
        return ids

    @staticmethod
    def from_json(obj: dict[str, Any]) -> Workflow:
        graph_mode = bool(obj.get("graph_mode", False))
        steps_raw = obj.get("steps") or []
        if not isinstance(steps_raw, list):
            raise ValueError("steps must be a list")

        steps: list[Step] = []
        for index, raw in enumerate(steps_raw):
            if not isinstance(raw, dict):
                raise ValueError(f"Step {index + 1}: invalid step format")
            steps.append(Step.from_json(raw, index=index, graph_mode=graph_mode))

        version_raw = obj.get("version", 0)
        version = version_raw if isinstance(version_raw, int) else 0
        return Workflow(
            id=str(obj.get("id") or ""),
            title=str(obj.get("title") or ""),
            description=str(obj.get("description") or ""),
            version=version,
            graph_mode=graph_mode,
            status=str(obj.get("status") or "draft"),
            steps=steps,
        )
