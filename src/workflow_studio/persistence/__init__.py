"""Reference persistence collaborator: JSON-file store, channel hub, fragments."""

from workflow_studio.persistence.fragments import build_step_fragment
from workflow_studio.persistence.hub import WorkflowHub, WorkflowNotFoundError
from workflow_studio.persistence.store import WorkflowRecord, WorkflowStore

__all__ = [
    "WorkflowHub",
    "WorkflowNotFoundError",
    "WorkflowRecord",
    "WorkflowStore",
    "build_step_fragment",
]
