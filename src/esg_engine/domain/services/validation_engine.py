# src/esg_engine/domain/services/validation_engine.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Raw input validation against effective validation rules.

Purpose:
    Check submitted raw values of non-calculated metrics against their
    effective (post-override) validation rules and report every failure.

Checks, per metric (all accumulated, never short-circuited):
    * required  -> value absent (None or blank text) while required
    * type      -> value cannot be read as the metric's data type
    * range     -> min_value / max_value compared numerically for numeric,
                   percentage and currency metrics, as ISO-8601 dates for
                   date metrics, and as raw strings for text metrics
    * pattern   -> ``re.search`` of the pattern over the value's string form

    Values supplied for codes that are not part of the catalog are reported
    with reason UNKNOWN_METRIC.

Layer:
    domain/services

Notes:
    - Output order is deterministic: catalog metrics in (sort_order, code)
      order, then unknown codes in ascending order.
    - Pure logic; no logging.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal

from esg_engine.domain.entities.calculation_result import ValidationFailed
from esg_engine.domain.entities.metric_catalog import Metric, ValidationRule
from esg_engine.domain.enums.calculation import ValidationFailureReason
from esg_engine.domain.enums.metric_data_type import NUMERIC_DATA_TYPES, MetricDataType

__all__ = ["ValidationEngine", "is_blank", "parse_number", "parse_date", "string_form"]

_BOOLEAN_STRINGS = {"true": True, "false": False, "yes": True, "no": False, "1": True, "0": False}


def is_blank(value: object) -> bool:
    """Return True when a value counts as "not supplied"."""
    return value is None or (isinstance(value, str) and not value.strip())


def parse_number(value: object) -> float | None:
    """Read a value as a finite float; None when it is not numeric."""
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float, Decimal)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def parse_date(value: object) -> date | None:
    """Read a value as a calendar date; None when it is not an ISO-8601 date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


def _parse_boolean(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _BOOLEAN_STRINGS.get(value.strip().lower())
    return None


def string_form(value: object) -> str:
    """Return the string a pattern is matched against."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class ValidationEngine:
    """Validate raw inputs against effective validation rules."""

    def validate(
        self,
        metrics: Iterable[Metric],
        rules: Mapping[str, ValidationRule],
        values: Mapping[str, object],
    ) -> tuple[ValidationFailed, ...]:
        """Validate raw values for every non-calculated metric.

        Args:
            metrics:
                Metrics of the framework. Calculated metrics are ignored.
            rules:
                Effective validation rule per metric id. Metrics without an
                entry are optional and unbounded.
            values:
                Submitted values keyed by metric code.

        Returns:
            Ordered tuple of failures; empty when everything passed.
        """
        catalog = sorted(metrics, key=lambda m: m.sort_key)
        known_codes = {m.code for m in catalog}
        failures: list[ValidationFailed] = []

        for metric in catalog:
            if metric.is_calculated:
                continue
            rule = rules.get(metric.metric_id) or ValidationRule()
            failures.extend(self.check_value(metric, rule, values.get(metric.code)))

        for code in sorted(set(values) - known_codes):
            failures.append(
                ValidationFailed(
                    metric_code=code,
                    reason=ValidationFailureReason.UNKNOWN_METRIC,
                    message=f"Metric {code!r} is not part of the framework.",
                )
            )
        return tuple(failures)

    def check_value(
        self,
        metric: Metric,
        rule: ValidationRule,
        value: object,
    ) -> list[ValidationFailed]:
        """Run every check of ``rule`` against one value.

        Args:
            metric: Metric the value belongs to.
            rule: Effective validation rule.
            value: Submitted value, or None.

        Returns:
            Failures for this value, in check order.
        """
        code = metric.code
        out: list[ValidationFailed] = []

        def fail(reason: ValidationFailureReason, default: str) -> None:
            out.append(ValidationFailed(code, reason, rule.error_message or default))

        if is_blank(value):
            if rule.is_required:
                fail(ValidationFailureReason.REQUIRED, f"{code} is required.")
            return out

        typed = self._typed(metric.data_type, value)
        if typed is None:
            fail(
                ValidationFailureReason.INVALID_TYPE,
                f"{code} value {value!r} is not a valid {metric.data_type.value}.",
            )
        elif metric.data_type is not MetricDataType.BOOLEAN:
            self._check_range(metric, rule, typed, fail)

        if rule.pattern:
            try:
                compiled = re.compile(rule.pattern)
            except re.error as exc:
                fail(
                    ValidationFailureReason.INVALID_PATTERN,
                    f"{code} pattern {rule.pattern!r} is not a valid regular expression: {exc}",
                )
            else:
                if compiled.search(string_form(value)) is None:
                    fail(
                        ValidationFailureReason.PATTERN_MISMATCH,
                        f"{code} value does not match pattern {rule.pattern!r}.",
                    )
        return out

    @staticmethod
    def _typed(data_type: MetricDataType, value: object) -> object | None:
        if data_type in NUMERIC_DATA_TYPES:
            return parse_number(value)
        if data_type is MetricDataType.DATE:
            return parse_date(value)
        if data_type is MetricDataType.BOOLEAN:
            return _parse_boolean(value)
        return string_form(value)

    def _check_range(
        self,
        metric: Metric,
        rule: ValidationRule,
        typed: object,
        fail: Callable[[ValidationFailureReason, str], None],
    ) -> None:
        code = metric.code
        for bound, reason in (
            (rule.min_value, ValidationFailureReason.BELOW_MIN),
            (rule.max_value, ValidationFailureReason.ABOVE_MAX),
        ):
            if bound is None or not str(bound).strip():
                continue
            limit = self._typed(metric.data_type, bound)
            if limit is None:
                fail(
                    ValidationFailureReason.INVALID_TYPE,
                    f"{code} bound {bound!r} is not a valid {metric.data_type.value}.",
                )
                continue
            if reason is ValidationFailureReason.BELOW_MIN and typed < limit:  # type: ignore[operator]
                fail(reason, f"{code} value is below the minimum of {bound}.")
            elif reason is ValidationFailureReason.ABOVE_MAX and typed > limit:  # type: ignore[operator]
                fail(reason, f"{code} value is above the maximum of {bound}.")
