# src/esg_engine/domain/entities/calculation_result.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Calculation run result entities.

Purpose:
    Value objects produced by the calculation engine: per-metric outcomes,
    accumulated validation failures, and the atomically published run result.

Layer:
    domain

Notes:
    - Results are constructed once at the end of a run and never mutated, so
      a consumer never observes a partially published calculation set.
    - Per-metric failures are data, not exceptions, so callers can reason
      about partial success.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from esg_engine.domain.enums.calculation import (
    CalculationRunState,
    MetricOutcomeStatus,
    ValidationFailureReason,
)

__all__ = ["ValidationFailed", "MetricOutcome", "CalculationRunResult"]


@dataclass(frozen=True)
class ValidationFailed:
    """A single failed validation check for a raw input.

    Attributes:
        metric_code:
            Code of the metric whose value failed.
        reason:
            Machine-readable failure reason.
        message:
            Human-readable message; the rule's ``error_message`` when set.
    """

    metric_code: str
    reason: ValidationFailureReason
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        """Return a JSON-friendly representation."""
        return {"metric_code": self.metric_code, "reason": self.reason.value, "message": self.message}


@dataclass(frozen=True)
class MetricOutcome:
    """Outcome of one calculated metric.

    Exactly one of the following holds:
        * ``status is VALUE``: ``value`` carries the float/bool result.
        * ``status is SKIPPED``: ``cause_code`` names the metric whose failure
          or absence prevented evaluation; ``blocked_by`` is the direct source
          through which the skip propagated.
        * ``status is ERROR``: ``error_code``/``detail`` describe the failure.

    Attributes:
        metric_id: Identity of the calculated metric.
        metric_code: Code of the calculated metric.
        status: Outcome status.
        value: Result when ``status`` is VALUE.
        cause_code: Root cause code when ``status`` is SKIPPED.
        blocked_by: Direct source code when ``status`` is SKIPPED.
        error_code: Stable error code when ``status`` is ERROR.
        detail: Human-readable explanation for SKIPPED/ERROR.
        weight: Effective (post-override) weight, if any.
        formula: Effective formula text that was evaluated.
    """

    metric_id: str
    metric_code: str
    status: MetricOutcomeStatus
    value: float | bool | None = None
    cause_code: str | None = None
    blocked_by: str | None = None
    error_code: str | None = None
    detail: str | None = None
    weight: Decimal | None = None
    formula: str | None = None

    @property
    def ok(self) -> bool:
        """True when the metric produced a value."""
        return self.status is MetricOutcomeStatus.VALUE

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "metric_id": self.metric_id,
            "metric_code": self.metric_code,
            "status": self.status.value,
            "value": self.value,
            "cause_code": self.cause_code,
            "blocked_by": self.blocked_by,
            "error_code": self.error_code,
            "detail": self.detail,
            "weight": str(self.weight) if self.weight is not None else None,
            "formula": self.formula,
        }


@dataclass(frozen=True)
class CalculationRunResult:
    """Atomically published result of one calculation run.

    Attributes:
        framework_id: Framework the run evaluated.
        industry_id: Industry used for override resolution, if any.
        entity_id: Entity being reported on.
        period: Reporting period label.
        state: Final run state (COMPLETED for published results).
        order: Evaluation order (metric ids) used by the run.
        outcomes: Per calculated metric outcome, in evaluation order.
        validation_failures: Accumulated raw input validation failures.
        inputs: Raw input values the run read, keyed by metric code.
    """

    framework_id: str
    industry_id: str | None
    entity_id: str
    period: str
    state: CalculationRunState
    order: tuple[str, ...]
    outcomes: tuple[MetricOutcome, ...]
    validation_failures: tuple[ValidationFailed, ...] = ()
    inputs: Mapping[str, Any] = field(default_factory=dict)

    def outcome_for(self, metric_code: str) -> MetricOutcome | None:
        """Return the outcome of a calculated metric by code, if present."""
        for outcome in self.outcomes:
            if outcome.metric_code == metric_code:
                return outcome
        return None

    @property
    def values(self) -> dict[str, float | bool]:
        """Mapping of metric code to value for metrics that produced one."""
        return {o.metric_code: o.value for o in self.outcomes if o.ok and o.value is not None}

    def counts(self) -> dict[MetricOutcomeStatus, int]:
        """Return the number of outcomes per status."""
        out = {status: 0 for status in MetricOutcomeStatus}
        for outcome in self.outcomes:
            out[outcome.status] += 1
        return out
