"""Variables declared by question steps."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from .steps import Step, StepType


class VariableType(str, Enum):
    STRING = "string"
    NUMERIC = "numeric"
    ENUM = "enum"


_NUMERIC_ANSWER_TYPES = {"number", "numeric", "integer", "decimal"}
_ENUM_ANSWER_TYPES = {"multiple_choice", "dropdown", "yes_no", "enum", "select"}


@dataclass(frozen=True, slots=True)
class Variable:
    name: str
    type: VariableType
    step_id: str
    options: tuple[str, ...] = ()

    @property
    def is_numeric(self) -> bool:
        return self.type == VariableType.NUMERIC


def variable_type_for(answer_type: str) -> VariableType:
    lowered = answer_type.strip().lower()
    if lowered in _NUMERIC_ANSWER_TYPES:
        return VariableType.NUMERIC
    if lowered in _ENUM_ANSWER_TYPES:
        return VariableType.ENUM
    return VariableType.STRING


def _options_for(step: Step) -> tuple[str, ...]:
    if step.answer_type == "yes_no":
        return ("yes", "no")

    raw = step.payload.get("options")
    if not isinstance(raw, list):
        return ()

    options: list[str] = []
    for item in raw:
        if isinstance(item, dict):
            value = str(item.get("value") or item.get("label") or "").strip()
        else:
            value = str(item).strip()
        if value:
            options.append(value)
    return tuple(options)


class VariableRegistry:
    """Name -> Variable, scanned from question steps in step order.

    A later declaration of the same name overwrites an earlier one but keeps
    the position of the first declaration in :meth:`list`.
    """

    def __init__(self, variables: Iterable[Variable] = ()) -> None:
        self._variables: dict[str, Variable] = {}
        for variable in variables:
            self._variables[variable.name] = variable

    @classmethod
    def from_steps(cls, steps: Sequence[Step]) -> VariableRegistry:
        declared: list[Variable] = []
        for step in steps:
            if step.type != StepType.QUESTION or not step.variable_name:
                continue
            variable_type = variable_type_for(step.answer_type)
            declared.append(
                Variable(
                    name=step.variable_name,
                    type=variable_type,
                    step_id=step.id,
                    options=_options_for(step) if variable_type == VariableType.ENUM else (),
                )
            )
        return cls(declared)

    def lookup(self, name: str) -> Variable | None:
        return self._variables.get(name)

    def list(self) -> list[Variable]:
        return list(self._variables.values())

    def names(self) -> list[str]:
        return list(self._variables)

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __len__(self) -> int:
        return len(self._variables)


def merge_variable_names(local: Sequence[str], remote: Sequence[str]) -> list[str]:
    """Merge server-derived names into the locally scanned list.

    Local (possibly unpersisted) names come first.
    """

    merged: list[str] = []
    seen: set[str] = set()
    for name in [*local, *remote]:
        cleaned = name.strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            merged.append(cleaned)
    return merged
