# src/esg_engine/domain/services/catalog_integrity.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Catalog integrity checks.

Purpose:
    Inspect a catalog snapshot for authoring mistakes before it is used for a
    calculation run: formulas on raw metrics, calculated metrics without a
    formula, broken or unknown formula references, declared edges that
    disagree with what the formulas actually read, variations or edges that
    name unknown metrics, and circular definitions.

Layer:
    domain/services

Notes:
    - Issues are reported as data; nothing here raises for a bad catalog.
    - Industry override formulas are checked the same way as base formulas.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from esg_engine.domain.entities.metric_catalog import CatalogSnapshot, DependencyEdge, Metric
from esg_engine.domain.exceptions.calculation import (
    CatalogIntegrityError,
    CycleDetected,
    InvalidFormulaSyntax,
)
from esg_engine.domain.services.formula_language import parse_formula
from esg_engine.domain.services.metric_graph import build_graph
from esg_engine.domain.services.topological_sort import topological_indices

__all__ = ["CatalogIssueKind", "CatalogIssue", "CatalogIntegrityChecker"]


class CatalogIssueKind(str, Enum):
    """Kinds of catalog integrity issues."""

    FORMULA_ON_RAW_METRIC = "formula_on_raw_metric"
    MISSING_FORMULA = "missing_formula"
    INVALID_FORMULA = "invalid_formula"
    UNKNOWN_REFERENCE = "unknown_reference"
    UNDECLARED_DEPENDENCY = "undeclared_dependency"
    UNUSED_DEPENDENCY = "unused_dependency"
    UNKNOWN_EDGE_METRIC = "unknown_edge_metric"
    UNKNOWN_VARIATION_METRIC = "unknown_variation_metric"
    DUPLICATE_METRIC = "duplicate_metric"
    CYCLE = "cycle"


@dataclass(frozen=True)
class CatalogIssue:
    """A single integrity problem found in a catalog snapshot.

    Attributes:
        kind: Issue kind.
        metric_code: Code (or id, when no code is known) the issue concerns.
        detail: Human-readable explanation.
        industry_id: Industry whose variation the issue concerns, if any.
    """

    kind: CatalogIssueKind
    metric_code: str
    detail: str
    industry_id: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        """Return a JSON-friendly representation."""
        return {
            "kind": self.kind.value,
            "metric_code": self.metric_code,
            "detail": self.detail,
            "industry_id": self.industry_id,
        }


class CatalogIntegrityChecker:
    """Report integrity issues of a catalog snapshot."""

    def check(self, snapshot: CatalogSnapshot) -> tuple[CatalogIssue, ...]:
        """Run every integrity check.

        Args:
            snapshot: Catalog snapshot to inspect.

        Returns:
            Issues in deterministic order: per metric in (sort_order, code)
            order, then edges, variations, and finally cycles.
        """
        issues: list[CatalogIssue] = []
        by_id = snapshot.metrics_by_id
        known_codes = {m.code for m in snapshot.metrics}

        declared: dict[str, set[str]] = {}
        for edge in snapshot.edges:
            declared.setdefault(edge.dependent_metric_id, set()).add(edge.source_metric_id)

        inferred: list[DependencyEdge] = []
        for metric in sorted(snapshot.metrics, key=lambda m: m.sort_key):
            if not metric.is_calculated:
                if metric.formula and metric.formula.strip():
                    issues.append(
                        CatalogIssue(
                            CatalogIssueKind.FORMULA_ON_RAW_METRIC,
                            metric.code,
                            "Non-calculated metric carries a formula.",
                        )
                    )
                continue
            if not metric.formula or not metric.formula.strip():
                issues.append(
                    CatalogIssue(
                        CatalogIssueKind.MISSING_FORMULA,
                        metric.code,
                        "Calculated metric has no formula.",
                    )
                )
                continue

            references = self._references(metric, metric.formula, known_codes, issues)
            if references is None:
                continue
            source_ids = {snapshot.metrics_by_code[c].metric_id for c in references}
            inferred.extend(DependencyEdge(metric.metric_id, s) for s in sorted(source_ids))
            declared_ids = declared.get(metric.metric_id, set())
            for code in references:
                if snapshot.metrics_by_code[code].metric_id not in declared_ids:
                    issues.append(
                        CatalogIssue(
                            CatalogIssueKind.UNDECLARED_DEPENDENCY,
                            metric.code,
                            f"Formula reads {code!r} but no dependency edge is declared.",
                        )
                    )
            for source_id in sorted(declared_ids - source_ids):
                source = by_id.get(source_id)
                if source is not None:
                    issues.append(
                        CatalogIssue(
                            CatalogIssueKind.UNUSED_DEPENDENCY,
                            metric.code,
                            f"Declared dependency on {source.code!r} is not used by the formula.",
                        )
                    )

        for edge in snapshot.edges:
            for metric_id in (edge.dependent_metric_id, edge.source_metric_id):
                if metric_id not in by_id:
                    issues.append(
                        CatalogIssue(
                            CatalogIssueKind.UNKNOWN_EDGE_METRIC,
                            metric_id,
                            "Dependency edge names a metric that is not in the catalog.",
                        )
                    )

        for variation in sorted(snapshot.industry_variations, key=lambda v: (v.industry_id, v.metric_id)):
            metric = by_id.get(variation.metric_id)
            if metric is None:
                issues.append(
                    CatalogIssue(
                        CatalogIssueKind.UNKNOWN_VARIATION_METRIC,
                        variation.metric_id,
                        "Industry variation names a metric that is not in the catalog.",
                        industry_id=variation.industry_id,
                    )
                )
                continue
            if variation.override_formula is not None:
                self._references(
                    metric,
                    variation.override_formula,
                    known_codes,
                    issues,
                    industry_id=variation.industry_id,
                )

        issues.extend(self._cycle_issues(snapshot, inferred))
        return tuple(issues)

    @staticmethod
    def _references(
        metric: Metric,
        formula: str,
        known_codes: set[str],
        issues: list[CatalogIssue],
        *,
        industry_id: str | None = None,
    ) -> tuple[str, ...] | None:
        try:
            return parse_formula(formula, known_codes, metric_code=metric.code).references
        except InvalidFormulaSyntax as exc:
            identifier = exc.details.get("identifier")
            kind = CatalogIssueKind.UNKNOWN_REFERENCE if identifier else CatalogIssueKind.INVALID_FORMULA
            issues.append(CatalogIssue(kind, metric.code, exc.message, industry_id=industry_id))
            return None

    @staticmethod
    def _cycle_issues(snapshot: CatalogSnapshot, inferred: list[DependencyEdge]) -> list[CatalogIssue]:
        by_id = snapshot.metrics_by_id
        edges = [
            e
            for e in (*snapshot.edges, *inferred)
            if e.dependent_metric_id in by_id and e.source_metric_id in by_id
        ]
        try:
            topological_indices(build_graph(snapshot.metrics, edges))
        except CatalogIntegrityError as exc:
            return [CatalogIssue(CatalogIssueKind.DUPLICATE_METRIC, str(next(iter(exc.details.values()))), exc.message)]
        except CycleDetected as exc:
            return [
                CatalogIssue(CatalogIssueKind.CYCLE, code, exc.message)
                for code in exc.codes
            ]
        return []
