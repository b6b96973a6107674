"""Workflow Studio.

Core of a collaborative workflow-definition editor:
- a small condition language over typed step variables
- a step graph reconciling title-addressed branches and UUID transitions
- a deterministic flowchart layout
- an optimistic-concurrency autosave session
"""

__version__ = "0.1.0"

from workflow_studio.core.config import EditorConfig

__all__ = ["__version__", "EditorConfig"]
