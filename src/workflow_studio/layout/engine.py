"""Deterministic flowchart layout.

Steps go left to right in declaration order. Targets of non-sequential edges
drop by half a row so convergent branches separate visually. Sequential edges
are straight; every other edge is a quadratic curve whose bow alternates
below/above the baseline by branch index.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from workflow_studio.core.config import LayoutConfig
from workflow_studio.model.edges import EdgeKind
from workflow_studio.model.graph import ResolvedEdge, StepGraph
from workflow_studio.model.steps import Step, StepType

NEUTRAL_COLOR = "#6b7280"
YES_COLOR = "#10b981"
NO_COLOR = "#ef4444"
BRANCH_PALETTE: tuple[str, ...] = ("#10b981", "#3b82f6", "#f59e0b", "#8b5cf6", "#ec4899")
TRANSITION_PALETTE: tuple[str, ...] = (
    "#6366f1",
    "#10b981",
    "#f59e0b",
    "#ef4444",
    "#8b5cf6",
    "#ec4899",
)
ELSE_DASH = "5,5"

_BASE_BOW = 60.0
_BOW_STEP = 30.0
_LABEL_HEAD = re.compile(r"^(\w+)\s*(==|!=|>=|<=|>|<)")


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class EdgeGeometry:
    source: str
    target: str
    kind: EdgeKind
    label: str
    color: str
    dash: str | None
    start: Point
    end: Point
    control: Point | None
    label_at: Point

    @property
    def curved(self) -> bool:
        return self.control is not None

    @property
    def path(self) -> str:
        """SVG path data for the connector."""
        if self.control is None:
            return f"M {self.start.x:g} {self.start.y:g} L {self.end.x:g} {self.end.y:g}"
        return (
            f"M {self.start.x:g} {self.start.y:g} "
            f"Q {self.control.x:g} {self.control.y:g} {self.end.x:g} {self.end.y:g}"
        )

    def to_json(self) -> dict[str, object]:
        return {
            "source": self.source,
            "target": self.target,
            "kind": self.kind.value,
            "label": self.label,
            "color": self.color,
            "dash": self.dash,
            "path": self.path,
            "label_x": self.label_at.x,
            "label_y": self.label_at.y,
        }


@dataclass(frozen=True, slots=True)
class Layout:
    positions: dict[str, Point]
    edges: tuple[EdgeGeometry, ...]
    width: float
    height: float

    def to_json(self) -> dict[str, object]:
        return {
            "positions": {k: {"x": p.x, "y": p.y} for k, p in self.positions.items()},
            "edges": [e.to_json() for e in self.edges],
            "width": self.width,
            "height": self.height,
        }


def shorten_label(label: str, max_length: int) -> str:
    if len(label) <= max_length:
        return label
    match = _LABEL_HEAD.match(label)
    if match:
        return f"{match.group(1)} {match.group(2)}"
    return label[: max_length - 3] + "..."


def edge_style(edge: ResolvedEdge) -> tuple[str, str | None]:
    """Color and dash pattern for an edge kind."""

    if edge.kind == EdgeKind.YES:
        return YES_COLOR, None
    if edge.kind == EdgeKind.NO:
        return NO_COLOR, None
    if edge.kind == EdgeKind.ELSE:
        return NEUTRAL_COLOR, ELSE_DASH
    if edge.kind == EdgeKind.BRANCH:
        return BRANCH_PALETTE[edge.branch_index % len(BRANCH_PALETTE)], None
    if edge.kind == EdgeKind.TRANSITION and edge.condition:
        return TRANSITION_PALETTE[edge.branch_index % len(TRANSITION_PALETTE)], None
    return NEUTRAL_COLOR, None


class LayoutEngine:
    """Compute node positions and edge geometry from a resolved edge set."""

    def __init__(self, config: LayoutConfig | None = None) -> None:
        self.config = config or LayoutConfig()

    @property
    def horizontal_spacing(self) -> float:
        return self.config.node_width + self.config.node_margin

    @property
    def vertical_spacing(self) -> float:
        return self.config.node_height + self.config.node_margin

    def compute_for(self, graph: StepGraph) -> Layout:
        return self.compute(graph.steps, graph.resolve_edges())

    def compute(self, steps: Sequence[Step], edges: Sequence[ResolvedEdge]) -> Layout:
        cfg = self.config
        offset_targets = {e.target for e in edges if not e.is_sequential}

        positions: dict[str, Point] = {}
        x = cfg.node_margin
        for step in steps:
            y = cfg.node_margin
            if step.id in offset_targets:
                y += self.vertical_spacing / 2
            positions[step.id] = Point(x=x, y=y)
            if step.type == StepType.DECISION:
                x += self.horizontal_spacing * cfg.decision_spacing
            else:
                x += self.horizontal_spacing

        geometry = tuple(
            self._edge_geometry(edge, positions[edge.source], positions[edge.target])
            for edge in edges
            if edge.source in positions and edge.target in positions
        )

        if positions:
            width = max(p.x + cfg.node_width for p in positions.values()) + cfg.node_margin
            height = max(p.y + cfg.node_height for p in positions.values()) + cfg.node_margin
        else:
            width = height = 0.0

        return Layout(positions=positions, edges=geometry, width=width, height=height)

    def _edge_geometry(self, edge: ResolvedEdge, source: Point, target: Point) -> EdgeGeometry:
        cfg = self.config
        start = Point(x=source.x + cfg.node_width, y=source.y + cfg.node_height / 2)
        end = Point(x=target.x, y=target.y + cfg.node_height / 2)
        color, dash = edge_style(edge)

        control: Point | None = None
        if not edge.is_sequential:
            dy = end.y - start.y
            bow = min(_BASE_BOW, abs(dy) * 0.5) + edge.branch_index * _BOW_STEP
            control_x = start.x + (end.x - start.x) * 0.5
            if edge.branch_index % 2 == 0:
                control_y = max(start.y, end.y) + bow
            else:
                control_y = min(start.y, end.y) - bow
            control = Point(x=control_x, y=control_y)

        label_at = Point(x=(start.x + end.x) / 2, y=(start.y + end.y) / 2 - 5)
        return EdgeGeometry(
            source=edge.source,
            target=edge.target,
            kind=edge.kind,
            label=shorten_label(edge.label, cfg.max_label_length),
            color=color,
            dash=dash,
            start=start,
            end=end,
            control=control,
            label_at=label_at,
        )
