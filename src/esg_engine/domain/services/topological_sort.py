# src/esg_engine/domain/services/topological_sort.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Cycle detection and deterministic topological ordering.

Purpose:
    Validate that a metric dependency graph is acyclic and produce an
    evaluation order in which every metric appears after all metrics it reads.

Algorithm:
    Kahn's algorithm over the dependent -> sources in-degree. The ready set is
    a heap keyed by graph index; because MetricGraph indexes metrics in
    (sort_order, code) order, ties always break by sort_order, then code.

    When Kahn's algorithm stalls, the unconsumed metrics contain one or more
    cycles plus, possibly, metrics downstream of a cycle. Strongly connected
    components over the stalled sub-graph separate the two: every metric in a
    component of size > 1, or with a self-edge, lies on a cycle.

Layer:
    domain/services

Notes:
    - Pure functions; no I/O, no logging.
    - Complexity: O((V + E) log V); the log factor comes from the heap that
      makes the order reproducible.
"""

from __future__ import annotations

import heapq
from collections.abc import Callable, Sequence

from esg_engine.domain.exceptions.calculation import CycleDetected
from esg_engine.domain.services.metric_graph import MetricGraph

__all__ = ["topological_order", "topological_indices", "calculation_levels"]


def topological_indices(graph: MetricGraph) -> tuple[int, ...]:
    """Return the evaluation order as graph indices.

    Raises:
        CycleDetected: If the graph is not acyclic.
    """
    in_degree = [len(s) for s in graph.sources]
    ready = [i for i, degree in enumerate(in_degree) if degree == 0]
    heapq.heapify(ready)

    order: list[int] = []
    while ready:
        current = heapq.heappop(ready)
        order.append(current)
        for dependent in graph.dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(graph):
        stalled = [i for i, degree in enumerate(in_degree) if degree > 0]
        raise _cycle_error(graph, stalled)

    return tuple(order)


def topological_order(graph: MetricGraph) -> tuple[str, ...]:
    """Return metric ids in a deterministic, dependency-respecting order.

    For every edge (dependent, source) the source appears strictly before the
    dependent. Ties between simultaneously ready metrics break by
    (sort_order, code) ascending.

    Args:
        graph: Built dependency graph.

    Returns:
        Tuple of metric ids, each metric exactly once.

    Raises:
        CycleDetected: With every code lying on a cycle and one concrete cycle.
    """
    return tuple(graph.metrics[i].metric_id for i in topological_indices(graph))


def calculation_levels(graph: MetricGraph) -> tuple[tuple[str, ...], ...]:
    """Group metrics into waves of mutually independent metrics.

    Level 0 holds metrics without sources; every other metric sits one level
    above its deepest source. Metrics within a level never depend on each
    other and could be evaluated concurrently.

    Raises:
        CycleDetected: If the graph is not acyclic.
    """
    levels: list[int] = [0] * len(graph)
    for idx in topological_indices(graph):
        srcs = graph.sources[idx]
        if srcs:
            levels[idx] = 1 + max(levels[s] for s in srcs)

    depth = max(levels, default=-1) + 1
    buckets: list[list[int]] = [[] for _ in range(depth)]
    for idx, level in enumerate(levels):
        buckets[level].append(idx)
    return tuple(tuple(graph.metrics[i].metric_id for i in bucket) for bucket in buckets)


# --------------------------------------------------------------------------- #
# Cycle diagnostics                                                           #
# --------------------------------------------------------------------------- #


def _cycle_error(graph: MetricGraph, stalled: Sequence[int]) -> CycleDetected:
    """Build a CycleDetected error naming the exact cycle membership."""
    stalled_set = set(stalled)

    def successors(node: int) -> tuple[int, ...]:
        return tuple(s for s in graph.sources[node] if s in stalled_set)

    members: set[int] = set()
    components = _strongly_connected_components(sorted(stalled_set), successors)
    component_of: dict[int, int] = {}
    for comp_id, component in enumerate(components):
        for node in component:
            component_of[node] = comp_id
        if len(component) > 1 or component[0] in graph.sources[component[0]]:
            members.update(component)

    ordered_members = sorted(members)
    cycle = _walk_cycle(graph, ordered_members[0], component_of) if ordered_members else ()
    return CycleDetected(
        [graph.metrics[i].code for i in ordered_members],
        cycle=[graph.metrics[i].code for i in cycle],
    )


def _walk_cycle(graph: MetricGraph, start: int, component_of: dict[int, int]) -> tuple[int, ...]:
    """Follow the smallest in-component source from ``start`` until a node repeats.

    Every node of a cyclic component has at least one source inside the same
    component, so the walk always closes a loop.
    """
    comp = component_of[start]
    path: list[int] = []
    position: dict[int, int] = {}
    node = start
    while node not in position:
        position[node] = len(path)
        path.append(node)
        node = next(s for s in graph.sources[node] if component_of.get(s) == comp)
    return tuple(path[position[node] :])


def _strongly_connected_components(
    nodes: Sequence[int],
    successors: Callable[[int], Sequence[int]],
) -> list[list[int]]:
    """Iterative Tarjan SCC; returns components in discovery order."""
    counter = 0
    indices: dict[int, int] = {}
    lowlink: dict[int, int] = {}
    on_stack: set[int] = set()
    stack: list[int] = []
    components: list[list[int]] = []

    for root in nodes:
        if root in indices:
            continue
        indices[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(successors(root)))]

        while work:
            node, neighbors = work[-1]
            advanced = False
            for nxt in neighbors:
                if nxt not in indices:
                    indices[nxt] = lowlink[nxt] = counter
                    counter += 1
                    stack.append(nxt)
                    on_stack.add(nxt)
                    work.append((nxt, iter(successors(nxt))))
                    advanced = True
                    break
                if nxt in on_stack:
                    lowlink[node] = min(lowlink[node], indices[nxt])
            if advanced:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            if lowlink[node] == indices[node]:
                component: list[int] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(sorted(component))

    return components
