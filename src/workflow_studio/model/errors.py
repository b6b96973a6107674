"""Error taxonomy for the workflow model.

Condition errors are recovered locally as field-level messages; dangling
references are reported as warnings; only publish-time validation blocks.
"""

from __future__ import annotations

from dataclasses import dataclass, field


class ConditionError(ValueError):
    """Base class for condition-language errors."""


class ParseError(ConditionError):
    """The condition text does not match `<identifier> <op> <literal>`."""

    def __init__(self, message: str, *, text: str = "") -> None:
        super().__init__(message)
        self.text = text


class UnknownVariableError(ConditionError):
    """The condition names a variable that no question step declares."""

    def __init__(self, variable: str) -> None:
        super().__init__(f"Unknown variable: {variable}")
        self.variable = variable


class TypeMismatchError(ConditionError):
    """An ordering operator was used against a non-numeric variable."""

    def __init__(self, variable: str, operator: str, variable_type: str) -> None:
        super().__init__(
            f"Operator {operator} requires a numeric variable; {variable} is {variable_type}"
        )
        self.variable = variable
        self.operator = operator
        self.variable_type = variable_type


class StepNotFoundError(KeyError):
    """No step with the given identity exists in the graph."""


@dataclass
class DanglingReferenceError(Exception):
    """An edge targets a step that no longer exists (removed or renamed).

    Returned as a persistent, non-fatal warning rather than raised.
    """

    step_id: str
    edge_index: int
    target: str
    kind: str

    def __str__(self) -> str:
        return (
            f"Step {self.step_id}, {self.kind} edge {self.edge_index + 1}: "
            f"references missing step {self.target!r}"
        )


@dataclass
class ValidationError(Exception):
    """Publish-time structural validation failed."""

    errors: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return "; ".join(self.errors) or "Workflow is not publishable"


class NoMatchingBranchError(RuntimeError):
    """A decision step had no matching condition and no else-path at runtime."""

    def __init__(self, step_id: str) -> None:
        super().__init__(f"No branch matched for decision step {step_id} and no else-path is set")
        self.step_id = step_id


@dataclass
class ConversionError(Exception):
    """A legacy workflow could not be converted to graph mode."""

    errors: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return "; ".join(self.errors) or "Conversion failed"
