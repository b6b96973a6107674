"""Configuration for the REST server."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the workflow collaboration API."""

    # Dev-friendly CORS. Override via WORKFLOW_STUDIO_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="WORKFLOW_STUDIO_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    strict_conditions: bool = Field(
        default=False,
        validation_alias="WORKFLOW_STUDIO_STRICT_CONDITIONS",
        description="Treat condition type mismatches as publish errors.",
    )

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
