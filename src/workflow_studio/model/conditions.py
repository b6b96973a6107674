"""The condition language routing decision steps.

Grammar::

    <identifier> <op> <literal>      op in ==, !=, >, >=, <, <=

Equality operators take a quoted literal. Ordering operators take a bare
numeric literal when the variable is numeric and otherwise fall back to a
quoted literal compared lexicographically.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConditionError, ParseError, TypeMismatchError, UnknownVariableError
from .variables import VariableRegistry, VariableType

logger = logging.getLogger(__name__)

EQUALITY_OPERATORS: frozenset[str] = frozenset({"==", "!="})
ORDERING_OPERATORS: frozenset[str] = frozenset({">", ">=", "<", "<="})
OPERATORS: tuple[str, ...] = (">=", "<=", "!=", "==", ">", "<")

_NEGATED: dict[str, str] = {
    "==": "!=",
    "!=": "==",
    ">": "<=",
    "<=": ">",
    "<": ">=",
    ">=": "<",
}

_IDENTIFIER = re.compile(r"[A-Za-z_]\w*")
_HEAD = re.compile(r"^\s*(?P<variable>[A-Za-z_]\w*)\s*(?P<operator>[=!<>]+)\s*(?P<literal>.*?)\s*$")
_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?$")


@dataclass(frozen=True, slots=True)
class ConditionExpression:
    variable: str
    operator: str
    value: str
    quoted: bool = True

    @property
    def is_ordering(self) -> bool:
        return self.operator in ORDERING_OPERATORS

    def as_triple(self) -> tuple[str, str, str]:
        return (self.variable, self.operator, self.value)

    def __str__(self) -> str:
        if self.quoted:
            return f"{self.variable} {self.operator} {_quote(self.value)}"
        return f"{self.variable} {self.operator} {self.value}"


def _quote(value: str) -> str:
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    raise ParseError("Literal cannot contain both quote characters", text=value)


def _parse_literal(literal: str, text: str) -> tuple[str, bool]:
    if not literal:
        raise ParseError("Missing literal", text=text)

    quote = literal[0]
    if quote in {"'", '"'}:
        if len(literal) < 2 or literal[-1] != quote:
            raise ParseError("Unterminated string literal", text=text)
        inner = literal[1:-1]
        if quote in inner:
            raise ParseError("Malformed string literal", text=text)
        return inner, True

    if _NUMBER.match(literal):
        return literal, False
    raise ParseError(f"Malformed literal: {literal}", text=text)


def parse(text: str) -> ConditionExpression:
    """Parse condition text into its parts.

    Raises:
        ParseError: On unknown operators and malformed or unterminated literals.
    """

    source = (text or "").strip()
    if not source:
        raise ParseError("Condition is empty", text=text)

    match = _HEAD.match(source)
    if match is None:
        raise ParseError("Expected <variable> <operator> <value>", text=text)

    operator = match.group("operator")
    if operator not in OPERATORS:
        raise ParseError(f"Unknown operator: {operator}", text=text)

    value, quoted = _parse_literal(match.group("literal"), text)
    if operator in EQUALITY_OPERATORS and not quoted:
        raise ParseError(f"Operator {operator} requires a quoted value", text=text)

    return ConditionExpression(
        variable=match.group("variable"), operator=operator, value=value, quoted=quoted
    )


def build(
    variable: str,
    operator: str,
    value: str,
    *,
    variable_type: VariableType = VariableType.STRING,
) -> str:
    """Canonical serialization of a condition."""

    if not _IDENTIFIER.fullmatch(variable or ""):
        raise ParseError(f"Invalid variable name: {variable!r}", text=variable)
    if operator not in OPERATORS:
        raise ParseError(f"Unknown operator: {operator}", text=operator)

    bare = (
        operator in ORDERING_OPERATORS
        and variable_type == VariableType.NUMERIC
        and bool(_NUMBER.match(value))
    )
    expression = ConditionExpression(
        variable=variable, operator=operator, value=value, quoted=not bare
    )
    return str(expression)


def negate(expression: ConditionExpression) -> ConditionExpression:
    return ConditionExpression(
        variable=expression.variable,
        operator=_NEGATED[expression.operator],
        value=expression.value,
        quoted=expression.quoted,
    )


def _to_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    text = str(value).strip()
    if not _NUMBER.match(text):
        return None
    return float(text)


def _compare(operator: str, left: float | str, right: float | str) -> bool:
    if operator == ">":
        return left > right  # type: ignore[operator]
    if operator == ">=":
        return left >= right  # type: ignore[operator]
    if operator == "<":
        return left < right  # type: ignore[operator]
    if operator == "<=":
        return left <= right  # type: ignore[operator]
    raise ValueError(f"Not an ordering operator: {operator}")


def evaluate(
    expression: ConditionExpression | str,
    bindings: Mapping[str, object],
    registry: VariableRegistry | None = None,
) -> bool:
    """Evaluate a condition against variable bindings.

    Numeric comparisons fail closed when either side is not a number. A
    variable without a binding never matches.
    """

    expr = parse(expression) if isinstance(expression, str) else expression

    bound = bindings.get(expr.variable)
    if bound is None:
        return False

    if expr.operator in EQUALITY_OPERATORS:
        equal = str(bound).strip() == expr.value.strip()
        return equal if expr.operator == "==" else not equal

    numeric = not expr.quoted
    if registry is not None:
        declared = registry.lookup(expr.variable)
        if declared is not None and declared.is_numeric:
            numeric = True

    if numeric:
        left = _to_number(bound)
        right = _to_number(expr.value)
        if left is None or right is None:
            return False
        return _compare(expr.operator, left, right)

    return _compare(expr.operator, str(bound).strip(), expr.value.strip())


def matches(text: str, bindings: Mapping[str, object], registry: VariableRegistry | None = None) -> bool:
    """Evaluate condition text; unparsable conditions never match."""

    try:
        return evaluate(parse(text), bindings, registry)
    except ParseError:
        logger.debug("Unparsable condition treated as non-matching", extra={"condition": text})
        return False


def validate(text: str, registry: VariableRegistry, *, strict: bool = False) -> ConditionExpression:
    """Parse and check a condition against the declared variables.

    Raises:
        ParseError: If the text is not a valid condition.
        UnknownVariableError: If the variable is not declared.
        TypeMismatchError: In strict mode, for an ordering operator against a
            non-numeric variable.
    """

    expression = parse(text)
    variable = registry.lookup(expression.variable)
    if variable is None:
        raise UnknownVariableError(expression.variable)
    if strict and expression.is_ordering and not variable.is_numeric:
        raise TypeMismatchError(expression.variable, expression.operator, variable.type.value)
    return expression


def condition_problems(
    text: str, registry: VariableRegistry, *, strict: bool = False
) -> list[str]:
    """Field-level messages for a condition; empty when it is fine."""

    try:
        validate(text, registry, strict=strict)
    except ConditionError as e:
        return [str(e)]
    return []
