"""Multi-user autosave: session state machine, wire results and transports."""

from workflow_studio.collaboration.errors import TransportError, VersionConflictError
from workflow_studio.collaboration.messages import (
    AutosaveMessage,
    ConflictResult,
    ErrorResult,
    SavedResult,
    parse_save_result,
)
from workflow_studio.collaboration.session import CollaborationSession, StatusDisplay
from workflow_studio.collaboration.state_machine import IllegalTransitionError, SessionState
from workflow_studio.collaboration.transport import (
    ChannelHandlers,
    LocalTransport,
    WorkflowTransport,
)

__all__ = [
    "AutosaveMessage",
    "ChannelHandlers",
    "CollaborationSession",
    "ConflictResult",
    "ErrorResult",
    "IllegalTransitionError",
    "LocalTransport",
    "SavedResult",
    "SessionState",
    "StatusDisplay",
    "TransportError",
    "VersionConflictError",
    "WorkflowTransport",
    "parse_save_result",
]
