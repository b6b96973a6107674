"""Core configuration for the editor."""

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionConfig(BaseSettings):
    """Configuration for collaboration sessions (autosave)."""

    debounce_ms: int = Field(
        default=1000,
        ge=0,
        description="Quiet period after the last local edit before an autosave is submitted",
    )
    saved_status_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="How long the 'Saved' status stays visible before reverting to neutral",
    )
    error_status_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="How long transient error messages stay visible",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_STUDIO_SESSION_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


class LayoutConfig(BaseSettings):
    """Configuration for the flowchart layout."""

    node_width: float = Field(default=200.0, gt=0, description="Node width in pixels")
    node_height: float = Field(default=120.0, gt=0, description="Node height in pixels")
    node_margin: float = Field(
        default=40.0,
        ge=0,
        description="Gap between nodes and around the drawing surface",
    )
    decision_spacing: float = Field(
        default=1.5,
        ge=1.0,
        description="Horizontal spacing multiplier applied after decision steps",
    )
    max_label_length: int = Field(
        default=20,
        gt=3,
        description="Edge labels longer than this are shortened",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_STUDIO_LAYOUT_",
        env_file=".env",
        extra="ignore",
    )


class StoreConfig(BaseSettings):
    """Configuration for workflow persistence."""

    storage_path: Path = Field(
        default=Path(".workflows"),
        description="Directory where workflow records are persisted",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_STUDIO_STORE_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def workflows_file(self) -> Path:
        return self.storage_path / "workflows.json"


class LimitsConfig(BaseSettings):
    """Size limits enforced on submitted workflows."""

    max_steps: int = Field(default=200, gt=0)
    max_title_length: int = Field(default=500, gt=0)
    max_content_bytes: int = Field(
        default=50_000,
        gt=0,
        description="Limit for long text fields (description, question, instructions)",
    )
    max_branches: int = Field(default=50, gt=0)
    max_options: int = Field(default=100, gt=0)
    max_subflow_depth: int = Field(default=10, gt=0, description="Deepest sub-flow nesting")

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_STUDIO_LIMITS_",
        env_file=".env",
        extra="ignore",
    )


class EditorConfig(BaseSettings):
    """Main configuration for the editor."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    json_logs: bool = Field(
        default=False,
        description="Emit structured JSON log lines instead of plain text",
    )

    session: SessionConfig = Field(
        default_factory=SessionConfig,
        description="Collaboration session configuration",
    )
    layout: LayoutConfig = Field(
        default_factory=LayoutConfig,
        description="Layout configuration",
    )
    store: StoreConfig = Field(
        default_factory=StoreConfig,
        description="Persistence configuration",
    )
    limits: LimitsConfig = Field(
        default_factory=LimitsConfig,
        description="Workflow size limits",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_STUDIO_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        if self.json_logs:
            from workflow_studio.logging import configure_logging

            configure_logging(self.log_level)
        else:
            level = getattr(logging, self.log_level.upper(), logging.INFO)
            logging.basicConfig(
                level=level,
                format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        if self.debug:
            logging.getLogger("workflow_studio").setLevel(logging.DEBUG)
