"""Outgoing edges of a step.

Three surface syntaxes exist for "an edge out of a step":

- ``branches[] {condition, path}`` plus ``else_path`` (title-addressed)
- legacy ``condition`` / ``true_path`` / ``false_path`` (title-addressed)
- ``transitions[] {target_uuid, condition, label}`` (UUID-addressed, graph mode)

Inside the model they are all :class:`OutgoingEdge`; the syntaxes only exist in
:func:`edges_from_json` and :func:`edges_to_json`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class EdgeKind(str, Enum):
    BRANCH = "branch"
    ELSE = "else"
    YES = "yes"
    NO = "no"
    TRANSITION = "transition"
    # Only produced by StepGraph.resolve_edges, never stored.
    SEQUENTIAL = "sequential"


TITLE_ADDRESSED: frozenset[EdgeKind] = frozenset(
    {EdgeKind.BRANCH, EdgeKind.ELSE, EdgeKind.YES, EdgeKind.NO}
)


@dataclass(frozen=True, slots=True)
class OutgoingEdge:
    """A stored edge. ``target`` is a step title or UUID depending on ``kind``.

    An empty ``target`` means "explicitly not set yet".
    """

    kind: EdgeKind
    target: str = ""
    condition: str = ""
    label: str = ""

    @property
    def addressed_by_title(self) -> bool:
        return self.kind in TITLE_ADDRESSED

    @property
    def has_target(self) -> bool:
        return bool(self.target.strip())

    def with_target(self, target: str) -> OutgoingEdge:
        return replace(self, target=target)

    @staticmethod
    def branch(condition: str = "", target: str = "") -> OutgoingEdge:
        return OutgoingEdge(kind=EdgeKind.BRANCH, target=target, condition=condition)

    @staticmethod
    def otherwise(target: str) -> OutgoingEdge:
        return OutgoingEdge(kind=EdgeKind.ELSE, target=target)

    @staticmethod
    def transition(target: str = "", condition: str = "", label: str = "") -> OutgoingEdge:
        return OutgoingEdge(
            kind=EdgeKind.TRANSITION, target=target, condition=condition, label=label
        )


EDGE_JSON_KEYS: frozenset[str] = frozenset(
    {"branches", "else_path", "condition", "true_path", "false_path", "transitions"}
)


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def edges_from_json(raw: dict[str, Any], *, graph_mode: bool) -> list[OutgoingEdge]:
    """Read whichever edge syntax a serialized step uses."""

    if graph_mode:
        edges: list[OutgoingEdge] = []
        transitions = raw.get("transitions")
        if isinstance(transitions, list):
            for item in transitions:
                if not isinstance(item, dict):
                    continue
                edges.append(
                    OutgoingEdge.transition(
                        target=_text(item.get("target_uuid")),
                        condition=_text(item.get("condition")),
                        label=_text(item.get("label")),
                    )
                )
        return edges

    edges = []
    branches = raw.get("branches")
    if isinstance(branches, list) and branches:
        for item in branches:
            if not isinstance(item, dict):
                continue
            edges.append(
                OutgoingEdge.branch(
                    condition=_text(item.get("condition")),
                    target=_text(item.get("path")),
                )
            )
    elif any(_text(raw.get(key)) for key in ("true_path", "false_path", "condition")):
        condition = _text(raw.get("condition"))
        edges.append(
            OutgoingEdge(kind=EdgeKind.YES, target=_text(raw.get("true_path")), condition=condition)
        )
        edges.append(
            OutgoingEdge(kind=EdgeKind.NO, target=_text(raw.get("false_path")), condition=condition)
        )

    else_path = _text(raw.get("else_path"))
    if else_path:
        edges.append(OutgoingEdge.otherwise(else_path))
    return edges


def edges_to_json(edges: list[OutgoingEdge]) -> dict[str, Any]:
    """Write edges back using the syntax their kinds belong to."""

    out: dict[str, Any] = {}

    transitions = [e for e in edges if e.kind == EdgeKind.TRANSITION]
    if transitions:
        out["transitions"] = [
            {"target_uuid": e.target, "condition": e.condition, "label": e.label}
            for e in transitions
        ]

    branches = [e for e in edges if e.kind == EdgeKind.BRANCH]
    if branches:
        out["branches"] = [{"condition": e.condition, "path": e.target} for e in branches]

    yes = next((e for e in edges if e.kind == EdgeKind.YES), None)
    no = next((e for e in edges if e.kind == EdgeKind.NO), None)
    if yes is not None or no is not None:
        out["condition"] = (yes or no).condition  # type: ignore[union-attr]
        out["true_path"] = yes.target if yes else ""
        out["false_path"] = no.target if no else ""

    otherwise = next((e for e in edges if e.kind == EdgeKind.ELSE), None)
    if otherwise is not None:
        out["else_path"] = otherwise.target

    return out
