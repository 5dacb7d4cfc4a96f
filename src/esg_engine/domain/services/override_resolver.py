# src/esg_engine/domain/services/override_resolver.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Industry override resolution for metric definitions.

Purpose:
    Merge an industry's variation of a metric onto the metric's base
    definition and produce the "effective" formula, validation rule, weight,
    and requiredness used for one (metric, industry) pair.

Precedence (applied independently per field):
    1. A non-null value on the industry variation wins.
    2. Otherwise the base metric / base rule value stands.

    ``is_required`` is the only field reachable from two variation fields:

        variation.is_required
            > variation.override_validation.is_required
            > base_rule.is_required
            > False (metric without a rule)

Layer:
    domain/services

Notes:
    - Absent industry means "use base values unmodified".
    - A partial variation never changes fields it does not specify.
    - No I/O, no logging; deterministic for a given snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

from esg_engine.domain.entities.metric_catalog import (
    CatalogSnapshot,
    IndustryVariation,
    Metric,
    ValidationRule,
)

__all__ = ["EffectiveMetric", "OverrideResolver"]

_RULE_FIELDS: tuple[str, ...] = ("min_value", "max_value", "pattern", "error_message")


@dataclass(frozen=True)
class EffectiveMetric:
    """Effective (post-override) definition of a metric for one industry.

    Attributes:
        metric:
            Base metric definition.
        industry_id:
            Industry the definition was resolved for, or None.
        formula:
            Effective formula text (None for raw metrics without override).
        rule:
            Effective validation rule (an empty rule when the metric has none).
        weight:
            Effective weight, if any.
        is_required:
            Effective requiredness of the metric's value.
        overridden_fields:
            Names of the fields whose value came from the industry variation,
            in a stable order. Empty when no variation applied.
    """

    metric: Metric
    industry_id: str | None
    formula: str | None
    rule: ValidationRule
    weight: Decimal | None
    is_required: bool
    overridden_fields: tuple[str, ...] = ()

    @property
    def code(self) -> str:
        """Code of the underlying metric."""
        return self.metric.code

    @property
    def metric_id(self) -> str:
        """Id of the underlying metric."""
        return self.metric.metric_id


class OverrideResolver:
    """Resolve industry variations onto base metric definitions."""

    def resolve(
        self,
        metric: Metric,
        base_rule: ValidationRule | None,
        industry_id: str | None,
        variation: IndustryVariation | None = None,
        *,
        base_weight: Decimal | None = None,
    ) -> EffectiveMetric:
        """Resolve the effective definition of a metric for an industry.

        Args:
            metric:
                Base metric definition.
            base_rule:
                Base validation rule, or None if the metric has none.
            industry_id:
                Industry to resolve for; None means base values unmodified.
            variation:
                The variation record for (industry_id, metric), if any. It is
                ignored when ``industry_id`` is None or does not match.
            base_weight:
                Weight to use when the variation does not override it.

        Returns:
            The EffectiveMetric for the pair.
        """
        rule = base_rule or ValidationRule()
        if (
            industry_id is None
            or variation is None
            or variation.industry_id != industry_id
            or variation.metric_id != metric.metric_id
        ):
            return EffectiveMetric(
                metric=metric,
                industry_id=industry_id,
                formula=metric.formula,
                rule=rule,
                weight=base_weight,
                is_required=rule.is_required,
            )

        overridden: list[str] = []

        formula = metric.formula
        if variation.override_formula is not None:
            formula = variation.override_formula
            overridden.append("formula")

        weight = base_weight
        if variation.weight is not None:
            weight = variation.weight
            overridden.append("weight")

        rule_override = variation.override_validation
        changes: dict[str, object] = {}
        if rule_override is not None:
            for name in _RULE_FIELDS:
                value = getattr(rule_override, name)
                if value is not None:
                    changes[name] = value
                    overridden.append(name)

        is_required = rule.is_required
        if variation.is_required is not None:
            is_required = variation.is_required
            overridden.append("is_required")
        elif rule_override is not None and rule_override.is_required is not None:
            is_required = rule_override.is_required
            overridden.append("is_required")
        changes["is_required"] = is_required

        return EffectiveMetric(
            metric=metric,
            industry_id=industry_id,
            formula=formula,
            rule=replace(rule, **changes),  # type: ignore[arg-type]
            weight=weight,
            is_required=is_required,
            overridden_fields=tuple(overridden),
        )

    def resolve_all(
        self,
        snapshot: CatalogSnapshot,
        industry_id: str | None,
    ) -> dict[str, EffectiveMetric]:
        """Resolve every metric of a snapshot for one industry.

        Args:
            snapshot: Catalog snapshot.
            industry_id: Industry to resolve for, or None.

        Returns:
            Mapping of metric id to EffectiveMetric.
        """
        return {
            metric.metric_id: self.resolve(
                metric,
                snapshot.rule_for(metric.metric_id),
                industry_id,
                snapshot.variation_for(industry_id, metric.metric_id),
                base_weight=snapshot.base_weights.get(metric.metric_id),
            )
            for metric in snapshot.metrics
        }
