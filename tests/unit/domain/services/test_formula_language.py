# tests/unit/domain/services/test_formula_language.py
# Copyright (c)
# SPDX-License-Identifier: MIT

from __future__ import annotations

import pytest

from esg_engine.domain.exceptions.calculation import InvalidFormulaSyntax
from esg_engine.domain.services.formula_language import (
    MAX_FORMULA_LENGTH,
    BinaryOperation,
    FunctionCall,
    MetricReference,
    NumberLiteral,
    TokenKind,
    UnaryOperation,
    parse_formula,
    tokenize,
)

CODES = ["305-1", "305-2", "ENERGY-TOTAL", "ENERGY", "TOTAL", "A", "B", "A-B", "SUM"]


def test_hyphenated_and_digit_leading_codes_are_single_tokens() -> None:
    tokens = tokenize("305-1 + ENERGY-TOTAL", CODES)

    assert [(t.kind, t.text) for t in tokens] == [
        (TokenKind.CODE, "305-1"),
        (TokenKind.OPERATOR, "+"),
        (TokenKind.CODE, "ENERGY-TOTAL"),
        (TokenKind.END, ""),
    ]


def test_spaced_minus_is_subtraction() -> None:
    expr = parse_formula("ENERGY - TOTAL", CODES)

    assert expr.root == BinaryOperation("-", MetricReference("ENERGY"), MetricReference("TOTAL"))


def test_longest_known_code_wins() -> None:
    expr = parse_formula("A-B", CODES)

    assert expr.root == MetricReference("A-B")
    assert expr.references == ("A-B",)


def test_unspaced_minus_between_codes_without_compound_code() -> None:
    expr = parse_formula("A-B", ["A", "B"])

    assert expr.root == BinaryOperation("-", MetricReference("A"), MetricReference("B"))


def test_function_name_followed_by_paren_is_a_call() -> None:
    expr = parse_formula("SUM(SUM, 1)", CODES)

    assert expr.root == FunctionCall("SUM", (MetricReference("SUM"), NumberLiteral(1.0)))


def test_function_names_are_case_insensitive() -> None:
    expr = parse_formula("divide(A, B)", CODES)

    assert isinstance(expr.root, FunctionCall)
    assert expr.root.name == "DIVIDE"


def test_precedence_and_unary_minus() -> None:
    expr = parse_formula("-A + B * 2", CODES)

    assert expr.root == BinaryOperation(
        "+",
        UnaryOperation("-", MetricReference("A")),
        BinaryOperation("*", MetricReference("B"), NumberLiteral(2.0)),
    )


def test_comparison_and_if() -> None:
    expr = parse_formula("IF(A >= 10, A, 0)", CODES)

    assert isinstance(expr.root, FunctionCall)
    assert expr.root.arguments[0] == BinaryOperation(">=", MetricReference("A"), NumberLiteral(10.0))


def test_references_are_deduplicated_in_first_appearance_order() -> None:
    expr = parse_formula("B + A + B + 305-2", CODES)

    assert expr.references == ("B", "A", "305-2")


def test_number_literals() -> None:
    expr = parse_formula("1.5e3 + .25", CODES)

    assert expr.root == BinaryOperation("+", NumberLiteral(1500.0), NumberLiteral(0.25))


def test_unknown_identifier_is_rejected_with_identifier_detail() -> None:
    with pytest.raises(InvalidFormulaSyntax) as exc_info:
        parse_formula("A + GHOST", CODES, metric_code="X")

    err = exc_info.value
    assert err.details["identifier"] == "GHOST"
    assert err.position == 4
    assert err.metric_code == "X"


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "A +",
        "(A + B",
        "A B",
        "DIVIDE(A)",
        "IF(A, B)",
        "SUM()",
        "A < B < 3",
        "A ; B",
        "__import__('os')",
        "A ** 2",
    ],
)
def test_invalid_formulas_raise(text: str) -> None:
    with pytest.raises(InvalidFormulaSyntax):
        parse_formula(text, CODES)


def test_overlong_formula_is_rejected() -> None:
    with pytest.raises(InvalidFormulaSyntax, match="exceeds"):
        parse_formula("1+" * MAX_FORMULA_LENGTH + "1", CODES)


def test_deep_nesting_is_rejected() -> None:
    with pytest.raises(InvalidFormulaSyntax, match="nested too deeply"):
        parse_formula("(" * 200 + "A" + ")" * 200, CODES)
