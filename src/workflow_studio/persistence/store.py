"""JSON-file workflow store with optimistic concurrency.

Every accepted save increments the version by exactly one. The compare and
the increment happen under one lock, so two writers holding the same version
can never both succeed.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from workflow_studio.model.steps import Workflow

logger = logging.getLogger(__name__)


class WorkflowRecord(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    version: int = 0
    graph_mode: bool = False
    status: str = "draft"
    steps: list[dict[str, Any]] = Field(default_factory=list)

    created_by: str | None = None
    saved_by: str | None = None
    created_at: str
    updated_at: str

    def snapshot(self) -> dict[str, Any]:
        """Workflow content plus version, as sent to clients."""
        return self.model_dump(
            mode="json",
            include={"id", "title", "description", "version", "graph_mode", "status", "steps"},
        )

    def to_workflow(self) -> Workflow:
        return Workflow.from_json(self.snapshot())


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass
class WorkflowStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[WorkflowRecord]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Workflow store is not valid JSON", extra={"path": str(self.path)})
            return []
        if not isinstance(raw, list):
            return []
        return [WorkflowRecord.model_validate(item) for item in raw]

    def _save_unlocked(self, records: list[WorkflowRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json") for r in records]
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        tmp.replace(self.path)

    def list(self) -> list[WorkflowRecord]:
        with self._lock:
            return self._load_unlocked()

    def get(self, workflow_id: str) -> WorkflowRecord | None:
        with self._lock:
            for record in self._load_unlocked():
                if record.id == workflow_id:
                    return record
            return None

    def create(
        self,
        *,
        title: str,
        description: str = "",
        graph_mode: bool = False,
        steps: list[dict[str, Any]] | None = None,
        created_by: str | None = None,
        workflow_id: str | None = None,
    ) -> WorkflowRecord:
        with self._lock:
            records = self._load_unlocked()
            new_id = workflow_id or uuid.uuid4().hex
            if any(r.id == new_id for r in records):
                raise ValueError(f"Workflow already exists: {new_id}")
            now = _utc_iso_now()
            record = WorkflowRecord(
                id=new_id,
                title=title,
                description=description,
                graph_mode=graph_mode,
                steps=list(steps or []),
                created_by=created_by,
                created_at=now,
                updated_at=now,
            )
            records.append(record)
            self._save_unlocked(records)
            logger.info("Workflow created", extra={"workflow_id": new_id})
            return record

    def save_if_current(
        self,
        workflow_id: str,
        content: dict[str, Any],
        *,
        expected_version: int,
        saved_by: str | None,
    ) -> tuple[bool, WorkflowRecord]:
        """Accept ``content`` iff ``expected_version`` is the stored version.

        Returns ``(True, new_record)`` on success and ``(False, current_record)``
        when the submitted version is stale.

        Raises:
            KeyError: If the workflow does not exist.
        """

        with self._lock:
            records = self._load_unlocked()
            for idx, record in enumerate(records):
                if record.id != workflow_id:
                    continue
                if record.version != expected_version:
                    logger.info(
                        "Stale save rejected",
                        extra={
                            "workflow_id": workflow_id,
                            "expected_version": expected_version,
                            "current_version": record.version,
                        },
                    )
                    return False, record

                updates: dict[str, Any] = {
                    "version": record.version + 1,
                    "saved_by": saved_by,
                    "updated_at": _utc_iso_now(),
                    "steps": list(content.get("steps") or []),
                }
                title = str(content.get("title") or "").strip()
                if title:
                    updates["title"] = title
                if "description" in content:
                    updates["description"] = str(content.get("description") or "")
                if "graph_mode" in content:
                    updates["graph_mode"] = bool(content["graph_mode"])

                merged = record.model_copy(update=updates)
                records[idx] = merged
                self._save_unlocked(records)
                return True, merged
            raise KeyError(workflow_id)

    def update(self, workflow_id: str, **updates: Any) -> WorkflowRecord:
        """Update metadata (status, title) without touching the version."""

        with self._lock:
            records = self._load_unlocked()
            for idx, record in enumerate(records):
                if record.id != workflow_id:
                    continue
                merged = record.model_copy(update={"updated_at": _utc_iso_now(), **updates})
                records[idx] = merged
                self._save_unlocked(records)
                return merged
            raise KeyError(workflow_id)
