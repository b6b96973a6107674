"""Workflow model: steps, edges, variables, conditions and the step graph."""

from workflow_studio.model.conditions import (
    ConditionExpression,
    build,
    condition_problems,
    evaluate,
    parse,
    validate,
)
from workflow_studio.model.edges import EdgeKind, OutgoingEdge
from workflow_studio.model.errors import (
    ConditionError,
    ConversionError,
    DanglingReferenceError,
    NoMatchingBranchError,
    ParseError,
    StepNotFoundError,
    TypeMismatchError,
    UnknownVariableError,
    ValidationError,
)
from workflow_studio.model.graph import ResolvedEdge, StepGraph, TargetOption
from workflow_studio.model.steps import Step, StepType, Workflow
from workflow_studio.model.variables import Variable, VariableRegistry, VariableType

__all__ = [
    "ConditionError",
    "ConditionExpression",
    "ConversionError",
    "DanglingReferenceError",
    "EdgeKind",
    "NoMatchingBranchError",
    "OutgoingEdge",
    "ParseError",
    "ResolvedEdge",
    "Step",
    "StepGraph",
    "StepNotFoundError",
    "StepType",
    "TargetOption",
    "TypeMismatchError",
    "UnknownVariableError",
    "ValidationError",
    "Variable",
    "VariableRegistry",
    "VariableType",
    "Workflow",
    "build",
    "condition_problems",
    "evaluate",
    "parse",
    "validate",
]
