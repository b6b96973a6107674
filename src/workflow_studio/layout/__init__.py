"""Flowchart layout."""

from workflow_studio.layout.engine import EdgeGeometry, Layout, LayoutEngine, Point

__all__ = ["EdgeGeometry", "Layout", "LayoutEngine", "Point"]
