"""FastAPI server for workflow-studio.

Exposes the persistence collaborator (save, channel, variables, fragments)
over REST and a WebSocket channel. Editing logic stays in
`workflow_studio.model` and `workflow_studio.collaboration`.
"""

from __future__ import annotations

__all__ = ["create_app"]

from workflow_studio.server.app import create_app
