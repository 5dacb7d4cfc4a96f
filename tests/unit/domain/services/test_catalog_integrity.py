# tests/unit/domain/services/test_catalog_integrity.py
# Copyright (c)
# SPDX-License-Identifier: MIT

from __future__ import annotations

from esg_engine.domain.entities.metric_catalog import (
    CatalogSnapshot,
    DependencyEdge,
    IndustryVariation,
    Metric,
)
from esg_engine.domain.services.catalog_integrity import CatalogIntegrityChecker, CatalogIssueKind as K


def _kinds(snapshot: CatalogSnapshot) -> list[tuple[K, str]]:
    return [(i.kind, i.metric_code) for i in CatalogIntegrityChecker().check(snapshot)]


def test_clean_catalog_has_no_issues(energy_snapshot: CatalogSnapshot) -> None:
    assert CatalogIntegrityChecker().check(energy_snapshot) == ()


def test_formula_shape_issues() -> None:
    snapshot = CatalogSnapshot(
        framework_id="f",
        metrics=(
            Metric("a", "A", formula="1 + 1", sort_order=1),
            Metric("b", "B", is_calculated=True, sort_order=2),
            Metric("c", "C", is_calculated=True, formula="A +", sort_order=3),
            Metric("d", "D", is_calculated=True, formula="A + GHOST", sort_order=4),
        ),
    )

    assert _kinds(snapshot) == [
        (K.FORMULA_ON_RAW_METRIC, "A"),
        (K.MISSING_FORMULA, "B"),
        (K.INVALID_FORMULA, "C"),
        (K.UNKNOWN_REFERENCE, "D"),
    ]


def test_declared_edges_are_compared_with_formula_references() -> None:
    snapshot = CatalogSnapshot(
        framework_id="f",
        metrics=(
            Metric("a", "A", sort_order=1),
            Metric("b", "B", sort_order=2),
            Metric("c", "C", is_calculated=True, formula="A * 2", sort_order=3),
        ),
        edges=(DependencyEdge("c", "b"),),
    )

    assert _kinds(snapshot) == [
        (K.UNDECLARED_DEPENDENCY, "C"),
        (K.UNUSED_DEPENDENCY, "C"),
    ]


def test_unknown_edge_and_variation_metrics() -> None:
    snapshot = CatalogSnapshot(
        framework_id="f",
        metrics=(Metric("a", "A"),),
        edges=(DependencyEdge("ghost", "a"),),
        industry_variations=(IndustryVariation("oil", "phantom"),),
    )

    issues = CatalogIntegrityChecker().check(snapshot)

    assert [(i.kind, i.metric_code) for i in issues] == [
        (K.UNKNOWN_EDGE_METRIC, "ghost"),
        (K.UNKNOWN_VARIATION_METRIC, "phantom"),
    ]
    assert issues[1].industry_id == "oil"


def test_override_formulas_are_checked() -> None:
    snapshot = CatalogSnapshot(
        framework_id="f",
        metrics=(
            Metric("a", "A"),
            Metric("c", "C", is_calculated=True, formula="A", sort_order=1),
        ),
        edges=(DependencyEdge("c", "a"),),
        industry_variations=(IndustryVariation("oil", "c", override_formula="A + NOPE"),),
    )

    issues = CatalogIntegrityChecker().check(snapshot)

    assert [(i.kind, i.metric_code, i.industry_id) for i in issues] == [
        (K.UNKNOWN_REFERENCE, "C", "oil"),
    ]
    assert issues[0].to_dict()["kind"] == "unknown_reference"


def test_cycles_are_reported_per_member() -> None:
    snapshot = CatalogSnapshot(
        framework_id="f",
        metrics=(
            Metric("a", "A", is_calculated=True, formula="B + 1", sort_order=1),
            Metric("b", "B", is_calculated=True, formula="A + 1", sort_order=2),
        ),
        edges=(DependencyEdge("a", "b"), DependencyEdge("b", "a")),
    )

    assert _kinds(snapshot) == [(K.CYCLE, "A"), (K.CYCLE, "B")]


def test_duplicate_codes_are_reported() -> None:
    snapshot = CatalogSnapshot(
        framework_id="f",
        metrics=(Metric("a1", "A"), Metric("a2", "A")),
    )

    assert _kinds(snapshot) == [(K.DUPLICATE_METRIC, "A")]
