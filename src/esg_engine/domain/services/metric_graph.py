# src/esg_engine/domain/services/metric_graph.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Metric dependency graph builder.

Purpose:
    Build an in-memory, index-addressed dependency graph from a framework's
    metrics and dependency edges. Both adjacency directions are materialized:

        * source -> dependents  (used by impact analysis and scheduling)
        * dependent -> sources  (used by readiness checks and sub-graphs)

Layer:
    domain/services

Notes:
    - Metrics are indexed in (sort_order, code) order and neighbor tuples are
      sorted by index, so every derived traversal is deterministic and
      independent of input ordering.
    - The graph holds plain indices rather than mutually referencing objects;
      it is rebuilt for every run and never shared mutably.
    - This module performs no I/O and no logging.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from esg_engine.domain.entities.metric_catalog import DependencyEdge, Metric
from esg_engine.domain.exceptions.calculation import (
    CatalogIntegrityError,
    UnknownMetricReference,
)

__all__ = ["MetricGraph", "build_graph"]


@dataclass(frozen=True)
class MetricGraph:
    """Index-addressed dependency graph for one framework.

    Attributes:
        metrics:
            Metrics in index order ((sort_order, code) ascending).
        index:
            Mapping of metric id to its index in ``metrics``.
        dependents:
            For each index, the indices of metrics whose formulas read it.
        sources:
            For each index, the indices of metrics its formula reads.
    """

    metrics: tuple[Metric, ...]
    index: Mapping[str, int]
    dependents: tuple[tuple[int, ...], ...]
    sources: tuple[tuple[int, ...], ...]

    def __len__(self) -> int:
        return len(self.metrics)

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self.index

    @property
    def edge_count(self) -> int:
        """Number of distinct dependency edges."""
        return sum(len(s) for s in self.sources)

    def index_of(self, metric_id: str) -> int:
        """Return the index of a metric id.

        Raises:
            UnknownMetricReference: If the id is not part of the graph.
        """
        try:
            return self.index[metric_id]
        except KeyError:
            raise UnknownMetricReference(metric_id, context="graph lookup") from None

    def sources_of(self, metric_id: str) -> tuple[str, ...]:
        """Return the ids of the metrics that ``metric_id`` reads."""
        return tuple(self.metrics[i].metric_id for i in self.sources[self.index_of(metric_id)])

    def dependents_of(self, metric_id: str) -> tuple[str, ...]:
        """Return the ids of the metrics that read ``metric_id``."""
        return tuple(self.metrics[i].metric_id for i in self.dependents[self.index_of(metric_id)])

    def iter_edges(self) -> Iterable[DependencyEdge]:
        """Yield every edge as a DependencyEdge, in index order."""
        for dep_idx, source_indices in enumerate(self.sources):
            for src_idx in source_indices:
                yield DependencyEdge(
                    dependent_metric_id=self.metrics[dep_idx].metric_id,
                    source_metric_id=self.metrics[src_idx].metric_id,
                )

    def subgraph_for(self, target_id: str) -> MetricGraph:
        """Restrict the graph to a target metric and its transitive sources.

        Args:
            target_id: Metric whose evaluation closure should be kept.

        Returns:
            A new MetricGraph containing only the metrics needed to evaluate
            ``target_id``.
        """
        start = self.index_of(target_id)
        keep: set[int] = {start}
        queue: deque[int] = deque([start])
        while queue:
            current = queue.popleft()
            for src in self.sources[current]:
                if src not in keep:
                    keep.add(src)
                    queue.append(src)

        kept_metrics = [self.metrics[i] for i in sorted(keep)]
        kept_edges = [
            edge
            for edge in self.iter_edges()
            if self.index[edge.dependent_metric_id] in keep
            and self.index[edge.source_metric_id] in keep
        ]
        return build_graph(kept_metrics, kept_edges)


def build_graph(metrics: Sequence[Metric], edges: Iterable[DependencyEdge]) -> MetricGraph:
    """Build a dependency graph from metrics and dependency edges.

    Args:
        metrics:
            Metrics of one framework (or a relevant subset).
        edges:
            Dependency edges (dependent -> source). Duplicates collapse.

    Returns:
        The built MetricGraph.

    Raises:
        CatalogIntegrityError:
            If two metrics share an id or a code.
        UnknownMetricReference:
            If an edge names a metric id absent from ``metrics``.
    """
    _ensure_unique(metrics)

    ordered = tuple(sorted(metrics, key=lambda m: m.sort_key))
    index: dict[str, int] = {m.metric_id: i for i, m in enumerate(ordered)}

    dependents: list[set[int]] = [set() for _ in ordered]
    sources: list[set[int]] = [set() for _ in ordered]

    for edge in edges:
        dep_idx = index.get(edge.dependent_metric_id)
        if dep_idx is None:
            raise UnknownMetricReference(edge.dependent_metric_id, context="edge dependent")
        src_idx = index.get(edge.source_metric_id)
        if src_idx is None:
            raise UnknownMetricReference(edge.source_metric_id, context="edge source")
        sources[dep_idx].add(src_idx)
        dependents[src_idx].add(dep_idx)

    return MetricGraph(
        metrics=ordered,
        index=index,
        dependents=tuple(tuple(sorted(d)) for d in dependents),
        sources=tuple(tuple(sorted(s)) for s in sources),
    )


def _ensure_unique(metrics: Sequence[Metric]) -> None:
    """Reject duplicate metric ids or codes, which would make indexing ambiguous."""
    seen_ids: set[str] = set()
    seen_codes: set[str] = set()
    for metric in metrics:
        if metric.metric_id in seen_ids:
            raise CatalogIntegrityError(
                "Duplicate metric id in catalog snapshot.",
                details={"metric_id": metric.metric_id},
            )
        if metric.code in seen_codes:
            raise CatalogIntegrityError(
                "Duplicate metric code in catalog snapshot.",
                details={"code": metric.code},
            )
        seen_ids.add(metric.metric_id)
        seen_codes.add(metric.code)
