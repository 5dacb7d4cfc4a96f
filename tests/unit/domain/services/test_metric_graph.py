# tests/unit/domain/services/test_metric_graph.py
# Copyright (c)
# SPDX-License-Identifier: MIT

from __future__ import annotations

import pytest

from esg_engine.domain.entities.metric_catalog import DependencyEdge, Metric
from esg_engine.domain.exceptions.calculation import CatalogIntegrityError, UnknownMetricReference
from esg_engine.domain.services.metric_graph import build_graph


def _metrics() -> list[Metric]:
    return [
        Metric("c", "C", sort_order=3, is_calculated=True, formula="A + B"),
        Metric("a", "A", sort_order=1),
        Metric("b", "B", sort_order=2),
        Metric("d", "D", sort_order=4, is_calculated=True, formula="C * 2"),
    ]


def _edges() -> list[DependencyEdge]:
    return [
        DependencyEdge("c", "a"),
        DependencyEdge("c", "b"),
        DependencyEdge("d", "c"),
        DependencyEdge("c", "a"),  # duplicate collapses
    ]


def test_graph_indexes_metrics_in_sort_order() -> None:
    graph = build_graph(_metrics(), _edges())

    assert [m.code for m in graph.metrics] == ["A", "B", "C", "D"]
    assert graph.index["c"] == 2
    assert len(graph) == 4
    assert "a" in graph and "zz" not in graph


def test_graph_materializes_both_directions() -> None:
    graph = build_graph(_metrics(), _edges())

    assert graph.sources_of("c") == ("a", "b")
    assert graph.dependents_of("a") == ("c",)
    assert graph.dependents_of("c") == ("d",)
    assert graph.sources_of("a") == ()
    assert graph.edge_count == 3


def test_graph_rejects_edges_to_unknown_metrics() -> None:
    with pytest.raises(UnknownMetricReference) as exc_info:
        build_graph(_metrics(), [DependencyEdge("c", "ghost")])

    assert exc_info.value.metric_id == "ghost"
    assert exc_info.value.details["context"] == "edge source"


def test_graph_rejects_duplicate_codes() -> None:
    metrics = [Metric("a", "A"), Metric("a2", "A")]

    with pytest.raises(CatalogIntegrityError):
        build_graph(metrics, [])


def test_subgraph_keeps_target_and_transitive_sources_only() -> None:
    metrics = [*_metrics(), Metric("e", "E", sort_order=5)]
    graph = build_graph(metrics, _edges())

    sub = graph.subgraph_for("c")

    assert [m.code for m in sub.metrics] == ["A", "B", "C"]
    assert sub.sources_of("c") == ("a", "b")
    assert sub.dependents_of("c") == ()


def test_lookup_of_unknown_id_raises() -> None:
    graph = build_graph(_metrics(), _edges())

    with pytest.raises(UnknownMetricReference):
        graph.index_of("missing")
