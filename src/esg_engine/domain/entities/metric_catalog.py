# src/esg_engine/domain/entities/metric_catalog.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Metric catalog snapshot entities.

Purpose:
    Immutable value objects describing one framework's metric catalog as the
    calculation engine sees it: metrics, dependency edges, validation rules,
    and industry-specific variations.

Layer:
    domain

Notes:
    - Snapshots are handed to the engine by a catalog provider and are never
      mutated during a run. Lifecycle flags (soft delete, "is active") are
      filtered out by the provider before the snapshot is built.
    - Override documents are explicit typed structs with optional fields, not
      open-ended maps, so override precedence is checkable field by field.
    - Metric identity is a string id (typically a UUID rendered as text).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from functools import cached_property
from typing import TypeAlias

from esg_engine.domain.enums.metric_data_type import MetricDataType

__all__ = [
    "RawValue",
    "Metric",
    "DependencyEdge",
    "ValidationRule",
    "ValidationRuleOverride",
    "IndustryVariation",
    "CatalogSnapshot",
]

# Literal value supplied by the ingestion collaborator for a raw metric.
RawValue: TypeAlias = bool | int | float | Decimal | str | date


@dataclass(frozen=True)
class Metric:
    """A single reportable or calculated data point within a framework.

    Attributes:
        metric_id:
            Stable identity of the metric.
        code:
            Code unique within the framework (e.g. "GRI-302-1", "305-1").
            Formulas reference other metrics by code.
        name:
            Human-readable name.
        data_type:
            Declared value type.
        is_calculated:
            True when the value is derived from a formula.
        formula:
            Formula text; present iff ``is_calculated``.
        framework_id:
            Owning framework.
        category_id:
            Owning ESG category.
        section_id:
            Optional framework section.
        sort_order:
            Display order; also the primary tie-break of the evaluation order.
        unit:
            Optional unit of measure (informational; no conversion is done).
        description:
            Optional free-text description.
    """

    metric_id: str
    code: str
    name: str = ""
    data_type: MetricDataType = MetricDataType.NUMERIC
    is_calculated: bool = False
    formula: str | None = None
    framework_id: str = ""
    category_id: str | None = None
    section_id: str | None = None
    sort_order: int = 0
    unit: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        """Enforce identity invariants."""
        if not isinstance(self.metric_id, str) or not self.metric_id.strip():
            raise ValueError("Metric.metric_id must be a non-empty string.")
        if not isinstance(self.code, str) or not self.code.strip():
            raise ValueError("Metric.code must be a non-empty string.")

    @property
    def sort_key(self) -> tuple[int, str]:
        """Deterministic ordering key: (sort_order, code)."""
        return (self.sort_order, self.code)


@dataclass(frozen=True)
class DependencyEdge:
    """Directed edge meaning "dependent's formula reads source's value"."""

    dependent_metric_id: str
    source_metric_id: str


@dataclass(frozen=True)
class ValidationRule:
    """Validation rule for a metric's raw input.

    Attributes:
        min_value:
            Lower bound, kept as text and compared numerically, by ISO date,
            or lexically depending on the metric's data type.
        max_value:
            Upper bound, same comparison semantics as ``min_value``.
        is_required:
            Whether a value must be supplied.
        pattern:
            Optional regular expression the string form of the value must match.
        error_message:
            Optional author-supplied message surfaced with failures.
    """

    min_value: str | None = None
    max_value: str | None = None
    is_required: bool = False
    pattern: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class ValidationRuleOverride:
    """Industry override of a validation rule; ``None`` means "keep base value"."""

    min_value: str | None = None
    max_value: str | None = None
    is_required: bool | None = None
    pattern: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class IndustryVariation:
    """Industry-specific override of a metric's definition.

    Every field is optional; a ``None`` field never changes the base value.
    """

    industry_id: str
    metric_id: str
    is_required: bool | None = None
    weight: Decimal | None = None
    override_formula: str | None = None
    override_validation: ValidationRuleOverride | None = None


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable snapshot of one framework's catalog for a calculation run.

    Attributes:
        framework_id:
            Framework the snapshot belongs to.
        metrics:
            All metrics of the framework.
        edges:
            Declared dependency edges between metrics of the framework.
        validation_rules:
            Base validation rule per metric id (metrics without a rule are
            optional and unbounded).
        industry_variations:
            Industry variations for metrics of this framework.
        base_weights:
            Optional base weight per metric id, used when no industry weight
            override applies.
    """

    framework_id: str
    metrics: tuple[Metric, ...]
    edges: tuple[DependencyEdge, ...] = ()
    validation_rules: Mapping[str, ValidationRule] = field(default_factory=dict)
    industry_variations: tuple[IndustryVariation, ...] = ()
    base_weights: Mapping[str, Decimal] = field(default_factory=dict)

    @cached_property
    def metrics_by_id(self) -> dict[str, Metric]:
        """Index of metrics by id."""
        return {m.metric_id: m for m in self.metrics}

    @cached_property
    def metrics_by_code(self) -> dict[str, Metric]:
        """Index of metrics by code."""
        return {m.code: m for m in self.metrics}

    @cached_property
    def _variations(self) -> dict[tuple[str, str], IndustryVariation]:
        return {(v.industry_id, v.metric_id): v for v in self.industry_variations}

    def rule_for(self, metric_id: str) -> ValidationRule | None:
        """Return the base validation rule for a metric, if any."""
        return self.validation_rules.get(metric_id)

    def variation_for(self, industry_id: str | None, metric_id: str) -> IndustryVariation | None:
        """Return the industry variation for ``(industry_id, metric_id)``, if any."""
        if industry_id is None:
            return None
        return self._variations.get((industry_id, metric_id))
