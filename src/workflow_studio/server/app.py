"""FastAPI app factory.

Endpoints are thin wrappers over :class:`~workflow_studio.persistence.hub.WorkflowHub`.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workflow_studio import __version__
from workflow_studio.core.config import EditorConfig
from workflow_studio.persistence.hub import WorkflowHub
from workflow_studio.persistence.store import WorkflowStore
from workflow_studio.server.config import ServerSettings
from workflow_studio.server.router import router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = ServerSettings()
    editor = EditorConfig()

    app = FastAPI(
        title="Workflow Studio",
        version=__version__,
        description="Collaborative workflow editing API with optimistic-concurrency autosave.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.state.settings = settings
    app.state.hub = WorkflowHub(
        store=WorkflowStore(editor.store.workflows_file),
        limits=editor.limits,
        layout_config=editor.layout,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")
    logger.debug("App created", extra={"storage_path": str(editor.store.storage_path)})
    return app
