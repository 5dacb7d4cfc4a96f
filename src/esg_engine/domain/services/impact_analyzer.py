# src/esg_engine/domain/services/impact_analyzer.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Impact analysis: which metrics change when an input changes.

Layer:
    domain/services
"""

from __future__ import annotations

from collections import deque

from esg_engine.domain.services.metric_graph import MetricGraph
from esg_engine.domain.services.topological_sort import topological_indices

__all__ = ["analyze_impact", "ordered_impact"]


def _affected_indices(graph: MetricGraph, metric_id: str) -> set[int]:
    start = graph.index_of(metric_id)
    seen: set[int] = set()
    queue: deque[int] = deque([start])
    while queue:
        current = queue.popleft()
        for dependent in graph.dependents[current]:
            if dependent not in seen:
                seen.add(dependent)
                queue.append(dependent)
    seen.discard(start)
    return seen


def analyze_impact(graph: MetricGraph, metric_id: str) -> frozenset[str]:
    """Return every metric transitively affected by a change to ``metric_id``.

    The changed metric itself is not included.

    Raises:
        UnknownMetricReference: If ``metric_id`` is not part of the graph.
    """
    return frozenset(graph.metrics[i].metric_id for i in _affected_indices(graph, metric_id))


def ordered_impact(graph: MetricGraph, metric_id: str) -> tuple[str, ...]:
    """Return the affected metrics in evaluation order, for selective recomputation.

    Raises:
        UnknownMetricReference: If ``metric_id`` is not part of the graph.
        CycleDetected: If the graph is not acyclic.
    """
    affected = _affected_indices(graph, metric_id)
    return tuple(graph.metrics[i].metric_id for i in topological_indices(graph) if i in affected)
