# src/esg_engine/application/schemas/dto/calculation.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Application DTOs for ESG metric calculation.

Purpose:
    Provide Pydantic request/response DTOs for the calculation, validation,
    impact analysis, and framework description use cases. These DTOs are
    transport-agnostic and map one-to-one onto JSON documents emitted by the
    CLI.

Layer:
    application/schemas/dto
"""

from __future__ import annotations

from pydantic import Field

from esg_engine.application.schemas.dto.base import BaseDTO
from esg_engine.domain.entities.calculation_result import (
    CalculationRunResult,
    MetricOutcome,
    ValidationFailed,
)
from esg_engine.domain.enums.calculation import (
    CalculationRunState,
    MetricOutcomeStatus,
    ValidationFailureReason,
)

RawValueDTO = bool | int | float | str | None


class CalculateRequestDTO(BaseDTO):
    """Request to calculate every metric of a framework for one entity/period.

    Attributes:
        framework_id: Framework whose catalog is evaluated.
        industry_id: Industry for override resolution; None uses base definitions.
        entity_id: Reporting entity.
        period: Reporting period label.
        targets: Optional metric codes restricting the run to their closure.
    """

    framework_id: str = Field(min_length=1)
    industry_id: str | None = None
    entity_id: str = Field(min_length=1)
    period: str = Field(min_length=1)
    targets: list[str] | None = None


class ValidateRequestDTO(BaseDTO):
    """Request to validate submitted raw values without calculating."""

    framework_id: str = Field(min_length=1)
    industry_id: str | None = None
    values: dict[str, RawValueDTO] = Field(default_factory=dict)


class ImpactRequestDTO(BaseDTO):
    """Request to list metrics affected by a change to one metric."""

    framework_id: str = Field(min_length=1)
    metric_code: str = Field(min_length=1)
    industry_id: str | None = None


class ValidationFailureDTO(BaseDTO):
    """DTO for a single raw input validation failure."""

    metric_code: str
    reason: ValidationFailureReason
    message: str

    @classmethod
    def from_entity(cls, failure: ValidationFailed) -> ValidationFailureDTO:
        """Map a domain ValidationFailed onto the DTO."""
        return cls(metric_code=failure.metric_code, reason=failure.reason, message=failure.message)


class MetricOutcomeDTO(BaseDTO):
    """DTO for the outcome of one calculated metric.

    ``weight`` is rendered as a decimal string to avoid float drift.
    """

    metric_id: str
    metric_code: str
    status: MetricOutcomeStatus
    value: float | bool | None = None
    cause_code: str | None = None
    blocked_by: str | None = None
    error_code: str | None = None
    detail: str | None = None
    weight: str | None = None
    formula: str | None = None

    @classmethod
    def from_entity(cls, outcome: MetricOutcome) -> MetricOutcomeDTO:
        """Map a domain MetricOutcome onto the DTO."""
        return cls(
            metric_id=outcome.metric_id,
            metric_code=outcome.metric_code,
            status=outcome.status,
            value=outcome.value,
            cause_code=outcome.cause_code,
            blocked_by=outcome.blocked_by,
            error_code=outcome.error_code,
            detail=outcome.detail,
            weight=str(outcome.weight) if outcome.weight is not None else None,
            formula=outcome.formula,
        )


class CalculationResultDTO(BaseDTO):
    """DTO for a published calculation run.

    Attributes:
        run_id: Identifier of the run (correlates with log lines).
        framework_id: Framework evaluated.
        industry_id: Industry used for overrides, if any.
        entity_id: Reporting entity.
        period: Reporting period label.
        state: Final run state.
        order: Evaluation order as metric codes.
        outcomes: Per calculated metric outcome, in evaluation order.
        validation_failures: Raw input validation failures.
        counts: Number of outcomes per status.
        duration_ms: Wall-clock duration of the run.
    """

    run_id: str
    framework_id: str
    industry_id: str | None = None
    entity_id: str
    period: str
    state: CalculationRunState
    order: list[str]
    outcomes: list[MetricOutcomeDTO]
    validation_failures: list[ValidationFailureDTO] = Field(default_factory=list)
    counts: dict[MetricOutcomeStatus, int] = Field(default_factory=dict)
    duration_ms: float = Field(default=0.0, ge=0.0)

    @classmethod
    def from_entity(
        cls,
        result: CalculationRunResult,
        *,
        run_id: str,
        codes_by_id: dict[str, str],
        duration_ms: float = 0.0,
    ) -> CalculationResultDTO:
        """Map a domain CalculationRunResult onto the DTO.

        Args:
            result: Published run result.
            run_id: Run identifier.
            codes_by_id: Metric code per metric id, used to render the order.
            duration_ms: Wall-clock duration of the run.
        """
        return cls(
            run_id=run_id,
            framework_id=result.framework_id,
            industry_id=result.industry_id,
            entity_id=result.entity_id,
            period=result.period,
            state=result.state,
            order=[codes_by_id.get(mid, mid) for mid in result.order],
            outcomes=[MetricOutcomeDTO.from_entity(o) for o in result.outcomes],
            validation_failures=[ValidationFailureDTO.from_entity(f) for f in result.validation_failures],
            counts=result.counts(),
            duration_ms=duration_ms,
        )


class ImpactResultDTO(BaseDTO):
    """DTO listing metrics affected by a change, in evaluation order."""

    framework_id: str
    metric_code: str
    affected: list[str]


class FrameworkStatisticsDTO(BaseDTO):
    """DTO with structural statistics of a framework catalog.

    Attributes:
        framework_id: Framework described.
        total_metrics: Number of metrics.
        raw_metrics: Number of non-calculated metrics.
        calculated_metrics: Number of calculated metrics.
        required_metrics: Number of metrics required for the industry.
        edge_count: Dependency edges (declared and inferred from formulas).
        calculation_depth: Number of dependency levels.
        levels: Metric codes per dependency level.
        metrics_by_data_type: Metric count per data type.
        industry_variations: Number of industry variations in the catalog.
    """

    framework_id: str
    total_metrics: int = Field(ge=0)
    raw_metrics: int = Field(ge=0)
    calculated_metrics: int = Field(ge=0)
    required_metrics: int = Field(ge=0)
    edge_count: int = Field(ge=0)
    calculation_depth: int = Field(ge=0)
    levels: list[list[str]]
    metrics_by_data_type: dict[str, int]
    industry_variations: int = Field(ge=0)


__all__ = [
    "RawValueDTO",
    "CalculateRequestDTO",
    "ValidateRequestDTO",
    "ImpactRequestDTO",
    "ValidationFailureDTO",
    "MetricOutcomeDTO",
    "CalculationResultDTO",
    "ImpactResultDTO",
    "FrameworkStatisticsDTO",
]
