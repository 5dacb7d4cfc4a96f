# tests/unit/domain/services/test_validation_engine.py
# Copyright (c)
# SPDX-License-Identifier: MIT

from __future__ import annotations

from datetime import date

from esg_engine.domain.entities.metric_catalog import Metric, ValidationRule
from esg_engine.domain.enums.calculation import ValidationFailureReason as R
from esg_engine.domain.enums.metric_data_type import MetricDataType
from esg_engine.domain.services.validation_engine import ValidationEngine, string_form


def _metric(code: str, data_type: MetricDataType = MetricDataType.NUMERIC, order: int = 0) -> Metric:
    return Metric(code.lower(), code, data_type=data_type, sort_order=order)


def _reasons(metric: Metric, rule: ValidationRule, value: object) -> list[R]:
    return [f.reason for f in ValidationEngine().check_value(metric, rule, value)]


def test_required_value_missing() -> None:
    rule = ValidationRule(is_required=True)

    assert _reasons(_metric("A"), rule, None) == [R.REQUIRED]
    assert _reasons(_metric("A"), rule, "   ") == [R.REQUIRED]


def test_optional_missing_value_passes() -> None:
    assert _reasons(_metric("A"), ValidationRule(min_value="0"), None) == []


def test_numeric_range() -> None:
    rule = ValidationRule(min_value="0", max_value="100")
    metric = _metric("A")

    assert _reasons(metric, rule, -1) == [R.BELOW_MIN]
    assert _reasons(metric, rule, "101.5") == [R.ABOVE_MAX]
    assert _reasons(metric, rule, 0) == []
    assert _reasons(metric, rule, 100) == []


def test_invalid_numeric_value_skips_range_check() -> None:
    rule = ValidationRule(min_value="0")

    assert _reasons(_metric("A"), rule, "lots") == [R.INVALID_TYPE]
    assert _reasons(_metric("A"), rule, True) == [R.INVALID_TYPE]


def test_integer_too_large_for_float_is_invalid_type() -> None:
    assert _reasons(_metric("A"), ValidationRule(min_value="0"), 10**400) == [R.INVALID_TYPE]


def test_date_range_compares_dates() -> None:
    metric = _metric("D", MetricDataType.DATE)
    rule = ValidationRule(min_value="2024-01-01", max_value="2024-12-31")

    assert _reasons(metric, rule, "2023-12-31") == [R.BELOW_MIN]
    assert _reasons(metric, rule, date(2024, 6, 1)) == []
    assert _reasons(metric, rule, "not a date") == [R.INVALID_TYPE]


def test_text_range_compares_strings() -> None:
    metric = _metric("T", MetricDataType.TEXT)
    rule = ValidationRule(min_value="b", max_value="d")

    assert _reasons(metric, rule, "a") == [R.BELOW_MIN]
    assert _reasons(metric, rule, "c") == []


def test_boolean_values() -> None:
    metric = _metric("F", MetricDataType.BOOLEAN)

    assert _reasons(metric, ValidationRule(), "yes") == []
    assert _reasons(metric, ValidationRule(), "maybe") == [R.INVALID_TYPE]


def test_pattern_checks_string_form() -> None:
    metric = _metric("A")

    assert _reasons(metric, ValidationRule(pattern=r"^\d{3}$"), 120.0) == []
    assert _reasons(metric, ValidationRule(pattern=r"^\d{3}$"), 12) == [R.PATTERN_MISMATCH]
    assert _reasons(metric, ValidationRule(pattern="("), 12) == [R.INVALID_PATTERN]


def test_all_failures_accumulate() -> None:
    rule = ValidationRule(max_value="10", pattern="^1")

    assert _reasons(_metric("A"), rule, 55) == [R.ABOVE_MAX, R.PATTERN_MISMATCH]


def test_unparsable_bound_is_reported() -> None:
    assert _reasons(_metric("A"), ValidationRule(min_value="zero"), 5) == [R.INVALID_TYPE]


def test_error_message_overrides_default() -> None:
    failures = ValidationEngine().check_value(
        _metric("A"),
        ValidationRule(is_required=True, error_message="Provide A."),
        None,
    )

    assert failures[0].message == "Provide A."


def test_validate_orders_failures_and_reports_unknown_codes() -> None:
    metrics = [
        _metric("B", order=2),
        _metric("A", order=1),
        Metric("c", "C", is_calculated=True, formula="A + B", sort_order=3),
    ]
    rules = {"a": ValidationRule(is_required=True), "b": ValidationRule(min_value="0")}

    failures = ValidationEngine().validate(metrics, rules, {"B": -5, "ZZZ": 1, "YYY": 2, "C": 3})

    assert [(f.metric_code, f.reason) for f in failures] == [
        ("A", R.REQUIRED),
        ("B", R.BELOW_MIN),
        ("YYY", R.UNKNOWN_METRIC),
        ("ZZZ", R.UNKNOWN_METRIC),
    ]


def test_string_form() -> None:
    assert string_form(True) == "true"
    assert string_form(3.0) == "3"
    assert string_form(3.5) == "3.5"
    assert string_form(date(2024, 1, 2)) == "2024-01-02"
