"""Editor configuration."""

from workflow_studio.core.config import (
    EditorConfig,
    LayoutConfig,
    LimitsConfig,
    SessionConfig,
    StoreConfig,
)

__all__ = [
    "EditorConfig",
    "LayoutConfig",
    "LimitsConfig",
    "SessionConfig",
    "StoreConfig",
]
