# src/esg_engine/domain/services/formula_evaluator.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Formula evaluation over parsed syntax trees.

Purpose:
    Interpret a :class:`FormulaExpression` against operand values supplied by
    a resolver callback. Raw metrics resolve to their submitted values and
    calculated metrics to the values produced earlier in the run.

Missing operands:
    A referenced metric without a value is either required (raises
    MissingRequiredInput) or optional, in which case it evaluates to the
    ABSENT marker:

        SUM                         ABSENT counts as 0
        AVG, MIN, MAX, MULTIPLY     ABSENT operands are excluded; none left -> ABSENT
        DIVIDE                      either operand ABSENT -> ABSENT
        IF                          ABSENT condition -> ABSENT
        operators                   any ABSENT operand -> ABSENT

    A formula whose final value is ABSENT yields a FormulaResult without a
    value; ``absent_inputs`` names the optional codes that were missing.

Layer:
    domain/services

Notes:
    - Numbers are floats; booleans take part in arithmetic as 1/0.
    - Division by zero raises DivisionByZero; non-finite intermediate results
      raise FormulaTypeError so infinities and NaN never propagate.
    - IF evaluates only the chosen branch.
    - No logging, no I/O.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Final

from esg_engine.domain.exceptions.calculation import (
    DivisionByZero,
    FormulaError,
    FormulaTypeError,
    MissingRequiredInput,
)
from esg_engine.domain.services.formula_language import (
    BinaryOperation,
    FormulaExpression,
    FormulaNode,
    FunctionCall,
    MetricReference,
    NumberLiteral,
    UnaryOperation,
)

__all__ = [
    "ABSENT",
    "FormulaResult",
    "FormulaEvaluator",
    "OperandResolver",
    "RequirednessCheck",
    "coerce_operand",
]


class _Absent:
    """Marker for an optional operand that has no value."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT: Final[_Absent] = _Absent()

_Value = float | bool | _Absent

# Returns the value of a metric by code, or None when it has no value.
OperandResolver = Callable[[str], object]
# Returns True when the metric with the given code must have a value.
RequirednessCheck = Callable[[str], bool]

_TRUE_STRINGS: Final[frozenset[str]] = frozenset({"true", "yes"})
_FALSE_STRINGS: Final[frozenset[str]] = frozenset({"false", "no"})


@dataclass(frozen=True)
class FormulaResult:
    """Result of evaluating one formula.

    Attributes:
        value:
            Float or bool result; None when the result is ABSENT.
        absent_inputs:
            Optional metric codes that had no value, in the order they were
            first encountered.
    """

    value: float | bool | None
    absent_inputs: tuple[str, ...] = ()

    @property
    def is_absent(self) -> bool:
        """True when the formula produced no value."""
        return self.value is None


def coerce_operand(code: str, raw: object) -> float | bool:
    """Convert a resolved metric value into a formula operand.

    Args:
        code: Code of the metric the value belongs to (for error messages).
        raw: Resolved value (never None).

    Returns:
        A bool for boolean values, otherwise a finite float.

    Raises:
        FormulaTypeError: For text, date, or non-finite values.
    """
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float, Decimal)):
        try:
            value = float(raw)
        except OverflowError:
            raise FormulaTypeError(f"operand {code!r} is too large for a float") from None
        if not math.isfinite(value):
            raise FormulaTypeError(f"operand {code!r} is not a finite number")
        return value
    if isinstance(raw, str):
        text = raw.strip()
        lowered = text.lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        try:
            value = float(text)
        except ValueError:
            raise FormulaTypeError(f"operand {code!r} has non-numeric value {raw!r}") from None
        if not math.isfinite(value):
            raise FormulaTypeError(f"operand {code!r} is not a finite number")
        return value
    if isinstance(raw, date):
        raise FormulaTypeError(f"operand {code!r} is a date and cannot be used in arithmetic")
    raise FormulaTypeError(f"operand {code!r} has unsupported type {type(raw).__name__}")


def _finite(value: float, what: str) -> float:
    if not math.isfinite(value):
        raise FormulaTypeError(f"{what} produced a non-finite result")
    return value


def _fsum(values: Iterable[float], what: str) -> float:
    # fsum raises instead of returning inf when a partial sum overflows.
    try:
        total = math.fsum(values)
    except OverflowError:
        raise FormulaTypeError(f"{what} produced a non-finite result") from None
    return _finite(total, what)


class FormulaEvaluator:
    """Evaluate parsed formulas against a resolver callback.

    Args:
        resolve:
            Callback returning the value of a metric by code, or None.
        is_required:
            Callback returning whether a metric's value is required after
            override resolution.
    """

    def __init__(self, resolve: OperandResolver, is_required: RequirednessCheck) -> None:
        self._resolve = resolve
        self._is_required = is_required

    def evaluate(self, expression: FormulaExpression, *, metric_code: str | None = None) -> FormulaResult:
        """Evaluate a parsed formula.

        Args:
            expression: Parsed formula.
            metric_code: Owning calculated metric, bound onto raised errors.

        Returns:
            FormulaResult with a value, or without one when the result is ABSENT.

        Raises:
            MissingRequiredInput: A required operand has no value.
            DivisionByZero: A divisor evaluated to zero.
            FormulaTypeError: An operand is not numeric or a result is non-finite.
        """
        absent: dict[str, None] = {}
        try:
            value = self._eval(expression.root, absent)
        except FormulaError as exc:
            if metric_code is not None:
                exc.bind(metric_code)
            raise
        if value is ABSENT:
            return FormulaResult(value=None, absent_inputs=tuple(absent))
        if isinstance(value, float):
            value = _finite(value, "formula")
        return FormulaResult(value=value, absent_inputs=tuple(absent))  # type: ignore[arg-type]

    # ------------------------------------------------------------------ #
    # Tree walk                                                          #
    # ------------------------------------------------------------------ #

    def _eval(self, node: FormulaNode, absent: dict[str, None]) -> _Value:
        if isinstance(node, NumberLiteral):
            return node.value
        if isinstance(node, MetricReference):
            return self._reference(node.code, absent)
        if isinstance(node, UnaryOperation):
            operand = self._eval(node.operand, absent)
            if operand is ABSENT:
                return ABSENT
            number = _as_number(operand)
            return -number if node.operator == "-" else number
        if isinstance(node, BinaryOperation):
            return self._binary(node, absent)
        if isinstance(node, FunctionCall):
            return self._call(node, absent)
        raise FormulaTypeError(f"unsupported node {type(node).__name__}")

    def _reference(self, code: str, absent: dict[str, None]) -> _Value:
        raw = self._resolve(code)
        if raw is None:
            if self._is_required(code):
                raise MissingRequiredInput(code)
            absent.setdefault(code, None)
            return ABSENT
        return coerce_operand(code, raw)

    def _binary(self, node: BinaryOperation, absent: dict[str, None]) -> _Value:
        left = self._eval(node.left, absent)
        right = self._eval(node.right, absent)
        if left is ABSENT or right is ABSENT:
            return ABSENT
        a = _as_number(left)
        b = _as_number(right)
        op = node.operator
        if op == "+":
            return _finite(a + b, "addition")
        if op == "-":
            return _finite(a - b, "subtraction")
        if op == "*":
            return _finite(a * b, "multiplication")
        if op == "/":
            return _divide(a, b)
        if op == "<":
            return a < b
        if op == "<=":
            return a <= b
        if op == ">":
            return a > b
        if op == ">=":
            return a >= b
        if op == "==":
            return a == b
        if op == "!=":
            return a != b
        raise FormulaTypeError(f"unsupported operator {op!r}")

    def _call(self, node: FunctionCall, absent: dict[str, None]) -> _Value:
        name = node.name
        if name == "IF":
            condition = self._eval(node.arguments[0], absent)
            if condition is ABSENT:
                return ABSENT
            branch = node.arguments[1] if _as_number(condition) != 0.0 else node.arguments[2]
            return self._eval(branch, absent)

        values = [self._eval(arg, absent) for arg in node.arguments]

        if name == "DIVIDE":
            numerator, denominator = values
            if numerator is ABSENT or denominator is ABSENT:
                return ABSENT
            return _divide(_as_number(numerator), _as_number(denominator))

        if name == "SUM":
            return _fsum((0.0 if v is ABSENT else _as_number(v) for v in values), "SUM")

        present = [_as_number(v) for v in values if v is not ABSENT]
        if not present:
            return ABSENT
        if name == "AVG":
            return _finite(_fsum(present, "AVG") / len(present), "AVG")
        if name == "MIN":
            return min(present)
        if name == "MAX":
            return max(present)
        if name == "MULTIPLY":
            return _finite(math.prod(present), "MULTIPLY")
        raise FormulaTypeError(f"unsupported function {name!r}")


def _as_number(value: _Value) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, float):
        return value
    raise FormulaTypeError(f"operand {value!r} is not numeric")


def _divide(numerator: float, denominator: float) -> float:
    if denominator == 0.0:
        raise DivisionByZero()
    return _finite(numerator / denominator, "division")
