"""Unit tests for configuration."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from workflow_studio.core.config import (
    EditorConfig,
    LayoutConfig,
    LimitsConfig,
    SessionConfig,
    StoreConfig,
)


def test_session_config_defaults() -> None:
    """Test session config default values."""
    config = SessionConfig()

    assert config.debounce_ms == 1000
    assert config.debounce_seconds == 1.0
    assert config.saved_status_seconds == 3.0
    assert config.error_status_seconds == 5.0


def test_layout_config_defaults() -> None:
    config = LayoutConfig()

    assert config.node_width == 200
    assert config.node_height == 120
    assert config.node_margin == 40
    assert config.decision_spacing == 1.5
    assert config.max_label_length == 20


def test_store_config_workflows_file(tmp_path: Path) -> None:
    config = StoreConfig(storage_path=tmp_path)
    assert config.workflows_file == tmp_path / "workflows.json"


def test_limits_config_defaults() -> None:
    config = LimitsConfig()

    assert config.max_steps == 200
    assert config.max_title_length == 500
    assert config.max_content_bytes == 50_000
    assert config.max_branches == 50
    assert config.max_options == 100


def test_editor_config_composition() -> None:
    """Test editor config with nested configs."""
    config = EditorConfig(log_level="DEBUG", debug=True)

    assert config.log_level == "DEBUG"
    assert config.debug is True
    assert isinstance(config.session, SessionConfig)
    assert isinstance(config.layout, LayoutConfig)
    assert isinstance(config.store, StoreConfig)
    assert isinstance(config.limits, LimitsConfig)


def test_session_config_reads_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKFLOW_STUDIO_SESSION_DEBOUNCE_MS", "250")
    assert SessionConfig().debounce_seconds == 0.25


def test_session_config_loads_from_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WORKFLOW_STUDIO_SESSION_DEBOUNCE_MS", raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("WORKFLOW_STUDIO_SESSION_DEBOUNCE_MS=500\n", encoding="utf-8")

    assert SessionConfig().debounce_ms == 500


def test_setup_logging_debug_sets_package_level() -> None:
    EditorConfig(debug=True).setup_logging()
    assert logging.getLogger("workflow_studio").level == logging.DEBUG
    logging.getLogger("workflow_studio").setLevel(logging.NOTSET)
