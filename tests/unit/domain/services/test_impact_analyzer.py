# tests/unit/domain/services/test_impact_analyzer.py
# Copyright (c)
# SPDX-License-Identifier: MIT

from __future__ import annotations

import pytest

from esg_engine.domain.entities.metric_catalog import DependencyEdge, Metric
from esg_engine.domain.exceptions.calculation import UnknownMetricReference
from esg_engine.domain.services.impact_analyzer import analyze_impact, ordered_impact
from esg_engine.domain.services.metric_graph import build_graph


def _graph():
    metrics = [Metric(code.lower(), code, sort_order=i) for i, code in enumerate("ABCDE")]
    edges = [
        DependencyEdge("c", "a"),
        DependencyEdge("d", "c"),
        DependencyEdge("d", "b"),
        DependencyEdge("e", "b"),
    ]
    return build_graph(metrics, edges)


def test_impact_is_transitive_and_excludes_the_changed_metric() -> None:
    assert analyze_impact(_graph(), "a") == frozenset({"c", "d"})
    assert analyze_impact(_graph(), "b") == frozenset({"d", "e"})


def test_leaf_has_no_impact() -> None:
    assert analyze_impact(_graph(), "d") == frozenset()


def test_ordered_impact_follows_evaluation_order() -> None:
    assert ordered_impact(_graph(), "a") == ("c", "d")


def test_unknown_metric_raises() -> None:
    with pytest.raises(UnknownMetricReference):
        analyze_impact(_graph(), "zzz")
