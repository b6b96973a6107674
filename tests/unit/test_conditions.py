"""Unit tests for the condition language."""

from __future__ import annotations

import pytest

from workflow_studio.model.conditions import (
    build,
    condition_problems,
    evaluate,
    matches,
    negate,
    parse,
    validate,
)
from workflow_studio.model.errors import ParseError, TypeMismatchError, UnknownVariableError
from workflow_studio.model.steps import Step, StepType
from workflow_studio.model.variables import VariableRegistry, VariableType


def _registry() -> VariableRegistry:
    return VariableRegistry.from_steps(
        [
            Step(id="0", type=StepType.QUESTION, payload={"variable_name": "age", "answer_type": "number"}),
            Step(id="1", type=StepType.QUESTION, payload={"variable_name": "name", "answer_type": "text"}),
        ]
    )


@pytest.mark.parametrize(
    ("variable", "operator", "value", "variable_type"),
    [
        ("answer", "==", "yes", VariableType.STRING),
        ("answer", "!=", "it's fine", VariableType.STRING),
        ("age", ">=", "18", VariableType.NUMERIC),
        ("age", "<", "-2.5", VariableType.NUMERIC),
        ("name", ">", "m", VariableType.STRING),
        ("age", "==", "18", VariableType.NUMERIC),
    ],
)
def test_parse_build_round_trip(
    variable: str, operator: str, value: str, variable_type: VariableType
) -> None:
    text = build(variable, operator, value, variable_type=variable_type)
    assert parse(text).as_triple() == (variable, operator, value)


def test_build_uses_bare_literal_only_for_numeric_ordering() -> None:
    assert build("age", ">=", "18", variable_type=VariableType.NUMERIC) == "age >= 18"
    assert build("age", "==", "18", variable_type=VariableType.NUMERIC) == "age == '18'"
    assert build("name", ">", "m") == "name > 'm'"


def test_build_switches_quote_character() -> None:
    assert build("answer", "==", "it's") == "answer == \"it's\""


def test_build_rejects_value_with_both_quotes() -> None:
    with pytest.raises(ParseError):
        build("answer", "==", "it's \"odd\"")


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "age",
        "age = 'x'",
        "age => 5",
        "answer == 'yes",
        "answer == yes",
        "age >= eighteen",
        "1age == 'x'",
    ],
)
def test_parse_rejects_malformed_conditions(text: str) -> None:
    with pytest.raises(ParseError):
        parse(text)


def test_parse_accepts_double_quotes_and_spacing() -> None:
    expr = parse('  answer=="maybe"  ')
    assert expr.as_triple() == ("answer", "==", "maybe")
    assert str(expr) == "answer == 'maybe'"


def test_negate_inverts_operator() -> None:
    assert str(negate(parse("age >= 18"))) == "age < 18"
    assert str(negate(parse("answer == 'yes'"))) == "answer != 'yes'"


def test_evaluate_equality_is_trimmed_and_case_sensitive() -> None:
    assert evaluate("answer == 'yes'", {"answer": " yes "})
    assert not evaluate("answer == 'yes'", {"answer": "Yes"})
    assert evaluate("answer != 'yes'", {"answer": "no"})


def test_evaluate_missing_binding_never_matches() -> None:
    assert not evaluate("answer == 'yes'", {})
    assert not evaluate("answer != 'yes'", {})
    assert not evaluate("age > 3", {"other": 1})


def test_evaluate_numeric_comparisons_fail_closed() -> None:
    assert evaluate("age >= 18", {"age": "20"})
    assert evaluate("age >= 18", {"age": 18})
    assert not evaluate("age >= 18", {"age": ""})
    assert not evaluate("age < 18", {"age": "abc"})


def test_evaluate_uses_registry_type_for_quoted_literals() -> None:
    # Lexicographically "9" > "10"; numerically it is not.
    assert evaluate("age > '10'", {"age": "9"})
    assert not evaluate("age > '10'", {"age": "9"}, _registry())


def test_matches_treats_unparsable_condition_as_false() -> None:
    assert not matches("age >>> 3", {"age": 5})


def test_validate_reports_unknown_variable() -> None:
    with pytest.raises(UnknownVariableError) as exc:
        validate("color == 'red'", _registry())
    assert exc.value.variable == "color"


def test_validate_type_mismatch_only_in_strict_mode() -> None:
    registry = _registry()
    assert validate("name > 'm'", registry).variable == "name"
    with pytest.raises(TypeMismatchError):
        validate("name > 'm'", registry, strict=True)


def test_condition_problems_returns_messages() -> None:
    registry = _registry()
    assert condition_problems("age >= 18", registry) == []
    assert condition_problems("color == 'red'", registry) == ["Unknown variable: color"]
    assert len(condition_problems("age >=", registry)) == 1
