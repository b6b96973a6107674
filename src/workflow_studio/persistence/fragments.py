"""Editing-fragment markup for a new step.

:func:`build_step_fragment` is a pure function of its inputs. The server
endpoint and the session's offline fallback both call it, so a fragment
looks the same whichever side rendered it. Markup lives in one ``.jinja2``
template per step type under ``templates/``.
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from workflow_studio.model.steps import StepType

TEMPLATES_DIR = Path(__file__).parent / "templates"

ANSWER_TYPES = ("text", "yes_no", "multiple_choice", "dropdown", "number", "date", "file")
PRIORITIES = ("low", "normal", "high", "urgent")
RESOLUTION_TYPES = ("success", "failure", "transfer", "other")
ESCALATION_TARGETS = ("team", "queue", "supervisor", "channel")


def _validate_templates() -> None:
    """Every step type needs a template. Fails fast at import."""
    for kind in StepType:
        path = TEMPLATES_DIR / f"{kind.value}.jinja2"
        if not path.exists():
            raise FileNotFoundError(f"Template missing: {path}")


_validate_templates()


@lru_cache(maxsize=1)
def _get_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        autoescape=select_autoescape(enabled_extensions=("jinja2",), default=True),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _option_labels(options: Any) -> list[str]:
    labels: list[str] = []
    for option in options or []:
        if isinstance(option, dict):
            option = option.get("label") or option.get("value") or ""
        labels.append(str(option))
    return labels


def _branches(branches: Any) -> list[dict[str, str]]:
    if not isinstance(branches, list) or not branches:
        return [{"condition": "", "path": ""}]
    rows: list[dict[str, str]] = []
    for branch in branches:
        if not isinstance(branch, dict):
            branch = {}
        rows.append(
            {
                "condition": str(branch.get("condition") or ""),
                "path": str(branch.get("path") or ""),
            }
        )
    return rows


def build_step_fragment(
    step_type: StepType | str, index: int, payload: Mapping[str, Any] | None = None
) -> str:
    """Render the editing fragment for a step.

    ``payload`` holds the step's current field values. An optional
    ``step_titles`` entry lists the titles offered by path selectors.

    Raises:
        ValueError: If ``step_type`` is not a known step type.
    """

    kind = StepType(step_type)
    data = dict(payload or {})
    titles = [str(t) for t in data.pop("step_titles", []) or []]
    template = _get_environment().get_template("step.jinja2")
    return template.render(
        step_type=kind.value,
        index=index,
        step=data,
        step_titles=titles,
        options=_option_labels(data.get("options")),
        branches=_branches(data.get("branches")),
        answer_types=list(ANSWER_TYPES),
        priorities=list(PRIORITIES),
        resolution_types=list(RESOLUTION_TYPES),
        escalation_targets=list(ESCALATION_TARGETS),
    )
