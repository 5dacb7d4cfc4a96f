# src/esg_engine/domain/services/calculation_orchestrator.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Calculation orchestrator.

Purpose:
    Drive one calculation run for a (framework, industry, entity, period):

        BUILT        overrides resolved, formulas parsed, graph built
        SORTED       evaluation order computed, no cycles
        EVALUATING   raw inputs validated, calculated metrics evaluated
        COMPLETED    immutable CalculationRunResult published
        FAILED       structural error or cancellation; nothing published

Evaluation rules:
    - Implicit edges inferred from the effective (possibly overridden)
      formulas are unioned with the declared edges before sorting.
    - A required raw input without a value is a failed input. Every
      calculated metric reading a failed input, or a calculated metric that
      was skipped or errored, is SKIPPED with the root cause code.
    - Range/pattern validation failures are reported, but the value is used.
    - Formula errors are recorded on the metric; independent branches go on.

Concurrency:
    With ``max_workers > 1`` and enough calculated metrics, a DAG scheduler
    dispatches ready metrics to a ThreadPoolExecutor. A metric becomes ready
    once all of its calculated sources have an outcome. Outcomes are listed
    in evaluation order regardless of completion order, so sequential and
    parallel runs produce identical results.

Layer:
    domain/services

Notes:
    - No logging; the application layer logs and records metrics.
    - Per-run state lives in locals; one orchestrator may serve many runs.
"""

from __future__ import annotations

import heapq
import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

from esg_engine.domain.entities.calculation_result import (
    CalculationRunResult,
    MetricOutcome,
    ValidationFailed,
)
from esg_engine.domain.entities.metric_catalog import CatalogSnapshot, DependencyEdge, RawValue
from esg_engine.domain.enums.calculation import CalculationRunState, MetricOutcomeStatus
from esg_engine.domain.exceptions.calculation import (
    CalculationCancelled,
    FormulaError,
    InvalidFormulaSyntax,
    StructuralCatalogError,
    UnknownMetricReference,
)
from esg_engine.domain.services.formula_evaluator import FormulaEvaluator
from esg_engine.domain.services.formula_language import FormulaExpression, parse_formula
from esg_engine.domain.services.metric_graph import MetricGraph, build_graph
from esg_engine.domain.services.override_resolver import EffectiveMetric, OverrideResolver
from esg_engine.domain.services.topological_sort import topological_indices
from esg_engine.domain.services.validation_engine import ValidationEngine, is_blank

__all__ = [
    "CancellationToken",
    "PreparedCalculation",
    "CalculationOrchestrator",
]

StateListener = Callable[[CalculationRunState], None]


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation; no new metric is dispatched afterwards."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once cancellation has been requested."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise CalculationCancelled if cancellation has been requested."""
        if self._event.is_set():
            raise CalculationCancelled("Calculation run was cancelled.", details={"reason": "cancelled"})


@dataclass(frozen=True)
class PreparedCalculation:
    """Structurally validated plan for a calculation run.

    Attributes:
        snapshot: Catalog snapshot the plan was built from.
        industry_id: Industry used for override resolution.
        effective: Effective definition per metric id.
        graph: Dependency graph over declared and inferred edges.
        order: Evaluation order as graph indices.
        expressions: Parsed effective formula per calculated metric index.
        syntax_errors: Parse error per calculated metric index.
    """

    snapshot: CatalogSnapshot
    industry_id: str | None
    effective: Mapping[str, EffectiveMetric]
    graph: MetricGraph
    order: tuple[int, ...]
    expressions: Mapping[int, FormulaExpression]
    syntax_errors: Mapping[int, InvalidFormulaSyntax]

    @property
    def order_ids(self) -> tuple[str, ...]:
        """Evaluation order as metric ids."""
        return tuple(self.graph.metrics[i].metric_id for i in self.order)

    def is_calculated(self, idx: int) -> bool:
        """True when the metric at ``idx`` is calculated."""
        return self.graph.metrics[idx].is_calculated


@dataclass(frozen=True)
class _RunInputs:
    """Per-run raw inputs derived once, shared read-only by workers."""

    raw_values: Mapping[str, RawValue]
    failed_inputs: frozenset[int]
    selected: frozenset[int]


class CalculationOrchestrator:
    """Evaluate every calculated metric of a catalog snapshot.

    Args:
        max_workers:
            Worker threads for the DAG scheduler; 1 evaluates sequentially.
        parallel_threshold:
            Minimum number of calculated metrics before the pool is used.
        resolver:
            Override resolver (injectable for tests).
        validator:
            Raw input validation engine (injectable for tests).
    """

    def __init__(
        self,
        *,
        max_workers: int = 1,
        parallel_threshold: int = 0,
        resolver: OverrideResolver | None = None,
        validator: ValidationEngine | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._max_workers = max_workers
        self._parallel_threshold = max(0, parallel_threshold)
        self._resolver = resolver or OverrideResolver()
        self._validator = validator or ValidationEngine()

    # ------------------------------------------------------------------ #
    # Preparation                                                        #
    # ------------------------------------------------------------------ #

    def prepare(
        self,
        snapshot: CatalogSnapshot,
        industry_id: str | None,
        *,
        on_state: StateListener | None = None,
    ) -> PreparedCalculation:
        """Resolve overrides, parse formulas, build and sort the graph.

        Args:
            snapshot: Catalog snapshot.
            industry_id: Industry for override resolution, or None.
            on_state: Optional listener notified of state transitions.

        Returns:
            The prepared plan.

        Raises:
            UnknownMetricReference: A declared edge names an unknown metric.
            CatalogIntegrityError: Duplicate metric ids or codes.
            CycleDetected: The dependency graph is cyclic.
        """
        notify = on_state or _ignore_state
        notify(CalculationRunState.PENDING)
        try:
            effective = self._resolver.resolve_all(snapshot, industry_id)
            known_codes = [m.code for m in snapshot.metrics]
            parsed: dict[str, FormulaExpression] = {}
            errors: dict[str, InvalidFormulaSyntax] = {}
            inferred: list[DependencyEdge] = []

            for metric in snapshot.metrics:
                if not metric.is_calculated:
                    continue
                formula = effective[metric.metric_id].formula
                try:
                    expression = parse_formula(formula or "", known_codes, metric_code=metric.code)
                except InvalidFormulaSyntax as exc:
                    errors[metric.metric_id] = exc
                    continue
                parsed[metric.metric_id] = expression
                inferred.extend(
                    DependencyEdge(metric.metric_id, snapshot.metrics_by_code[code].metric_id)
                    for code in expression.references
                )

            graph = build_graph(snapshot.metrics, (*snapshot.edges, *inferred))
            notify(CalculationRunState.BUILT)
            order = topological_indices(graph)
            notify(CalculationRunState.SORTED)
        except StructuralCatalogError:
            notify(CalculationRunState.FAILED)
            raise

        return PreparedCalculation(
            snapshot=snapshot,
            industry_id=industry_id,
            effective=effective,
            graph=graph,
            order=order,
            expressions={graph.index[mid]: expr for mid, expr in parsed.items()},
            syntax_errors={graph.index[mid]: exc for mid, exc in errors.items()},
        )

    # ------------------------------------------------------------------ #
    # Run                                                                #
    # ------------------------------------------------------------------ #

    def run(
        self,
        snapshot: CatalogSnapshot,
        values: Mapping[str, RawValue | None],
        *,
        industry_id: str | None = None,
        entity_id: str = "",
        period: str = "",
        targets: Sequence[str] | None = None,
        cancel_token: CancellationToken | None = None,
        on_state: StateListener | None = None,
    ) -> CalculationRunResult:
        """Run a complete calculation.

        Args:
            snapshot:
                Catalog snapshot of the framework.
            values:
                Raw input values keyed by metric code.
            industry_id:
                Industry for override resolution, or None.
            entity_id:
                Entity being reported on (carried into the result).
            period:
                Reporting period label (carried into the result).
            targets:
                Optional metric codes; when given, only these metrics and
                their transitive sources are validated and evaluated.
            cancel_token:
                Optional cancellation token.
            on_state:
                Optional listener notified of state transitions.

        Returns:
            The immutable CalculationRunResult.

        Raises:
            StructuralCatalogError: Unknown references, duplicates, or cycles.
            CalculationCancelled: The token was cancelled during the run.
        """
        notify = on_state or _ignore_state
        plan = self.prepare(snapshot, industry_id, on_state=notify)
        token = cancel_token or CancellationToken()

        try:
            selected = self._select(plan, targets)
            token.raise_if_cancelled()
            notify(CalculationRunState.EVALUATING)
            inputs, failures = self._raw_inputs(plan, values, selected)

            calculated = [i for i in plan.order if i in selected and plan.is_calculated(i)]
            if self._max_workers > 1 and len(calculated) >= max(2, self._parallel_threshold):
                outcomes = self._run_parallel(plan, inputs, calculated, token)
            else:
                outcomes = self._run_sequential(plan, inputs, calculated, token)
        except (CalculationCancelled, StructuralCatalogError):
            notify(CalculationRunState.FAILED)
            raise

        result = CalculationRunResult(
            framework_id=snapshot.framework_id,
            industry_id=industry_id,
            entity_id=entity_id,
            period=period,
            state=CalculationRunState.COMPLETED,
            order=tuple(plan.graph.metrics[i].metric_id for i in plan.order if i in selected),
            outcomes=tuple(outcomes[i] for i in calculated),
            validation_failures=failures,
            inputs=dict(inputs.raw_values),
        )
        notify(CalculationRunState.COMPLETED)
        return result

    # ------------------------------------------------------------------ #
    # Internals                                                          #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _select(plan: PreparedCalculation, targets: Sequence[str] | None) -> frozenset[int]:
        graph = plan.graph
        if not targets:
            return frozenset(range(len(graph)))
        by_code = plan.snapshot.metrics_by_code
        keep: set[int] = set()
        for code in targets:
            metric = by_code.get(code)
            if metric is None:
                raise UnknownMetricReference(code, context="calculation target")
            sub = graph.subgraph_for(metric.metric_id)
            keep.update(graph.index[m.metric_id] for m in sub.metrics)
        return frozenset(keep)

    def _raw_inputs(
        self,
        plan: PreparedCalculation,
        values: Mapping[str, RawValue | None],
        selected: frozenset[int],
    ) -> tuple[_RunInputs, tuple[ValidationFailed, ...]]:
        graph = plan.graph
        raw_metrics = [graph.metrics[i] for i in sorted(selected) if not plan.is_calculated(i)]
        rules = {m.metric_id: plan.effective[m.metric_id].rule for m in raw_metrics}
        raw_codes = {m.code for m in raw_metrics}
        scoped_values = values if len(selected) == len(graph) else {
            code: value for code, value in values.items() if code in raw_codes
        }
        failures = self._validator.validate(raw_metrics, rules, scoped_values)

        raw_values: dict[str, RawValue] = {}
        failed: set[int] = set()
        for metric in raw_metrics:
            value = values.get(metric.code)
            if is_blank(value):
                if plan.effective[metric.metric_id].is_required:
                    failed.add(graph.index[metric.metric_id])
                continue
            raw_values[metric.code] = value  # type: ignore[assignment]

        return _RunInputs(raw_values, frozenset(failed), selected), failures

    def _run_sequential(
        self,
        plan: PreparedCalculation,
        inputs: _RunInputs,
        calculated: Sequence[int],
        token: CancellationToken,
    ) -> dict[int, MetricOutcome]:
        graph = plan.graph
        outcomes: dict[int, MetricOutcome] = {}
        for idx in calculated:
            token.raise_if_cancelled()
            sources = {s: outcomes[s] for s in graph.sources[idx] if s in outcomes}
            outcomes[idx] = self._evaluate(plan, inputs, idx, sources)
        return outcomes

    def _run_parallel(
        self,
        plan: PreparedCalculation,
        inputs: _RunInputs,
        calculated: Sequence[int],
        token: CancellationToken,
    ) -> dict[int, MetricOutcome]:
        graph = plan.graph
        members = set(calculated)
        position = {idx: pos for pos, idx in enumerate(calculated)}
        pending = {
            idx: sum(1 for s in graph.sources[idx] if s in members) for idx in calculated
        }
        ready = [position[idx] for idx, count in pending.items() if count == 0]
        heapq.heapify(ready)

        outcomes: dict[int, MetricOutcome] = {}
        in_flight: dict[Future[MetricOutcome], int] = {}

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="esg-calc") as pool:
            while ready or in_flight:
                while ready and not token.cancelled:
                    idx = calculated[heapq.heappop(ready)]
                    sources = {s: outcomes[s] for s in graph.sources[idx] if s in members}
                    future = pool.submit(self._evaluate, plan, inputs, idx, sources)
                    in_flight[future] = idx
                if token.cancelled and not in_flight:
                    break
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    idx = in_flight.pop(future)
                    outcomes[idx] = future.result()
                    for dependent in graph.dependents[idx]:
                        if dependent in pending:
                            pending[dependent] -= 1
                            if pending[dependent] == 0:
                                heapq.heappush(ready, position[dependent])

        token.raise_if_cancelled()
        return outcomes

    def _evaluate(
        self,
        plan: PreparedCalculation,
        inputs: _RunInputs,
        idx: int,
        computed: Mapping[int, MetricOutcome],
    ) -> MetricOutcome:
        """Produce the outcome of one calculated metric.

        ``computed`` must hold the outcome of every calculated source of
        ``idx``; it is only read.
        """
        graph = plan.graph
        metric = graph.metrics[idx]
        effective = plan.effective[metric.metric_id]

        def outcome(status: MetricOutcomeStatus, **fields: object) -> MetricOutcome:
            return MetricOutcome(
                metric_id=metric.metric_id,
                metric_code=metric.code,
                status=status,
                weight=effective.weight,
                formula=effective.formula,
                **fields,  # type: ignore[arg-type]
            )

        syntax_error = plan.syntax_errors.get(idx)
        if syntax_error is not None:
            return outcome(
                MetricOutcomeStatus.ERROR,
                error_code=syntax_error.code,
                detail=syntax_error.message,
            )

        for src in graph.sources[idx]:
            source = graph.metrics[src]
            if src in inputs.failed_inputs:
                return outcome(
                    MetricOutcomeStatus.SKIPPED,
                    cause_code=source.code,
                    blocked_by=source.code,
                    detail=f"Required input {source.code!r} has no value.",
                )
            upstream = computed.get(src)
            if upstream is not None and not upstream.ok:
                cause = upstream.cause_code if upstream.status is MetricOutcomeStatus.SKIPPED else source.code
                return outcome(
                    MetricOutcomeStatus.SKIPPED,
                    cause_code=cause or source.code,
                    blocked_by=source.code,
                    detail=f"Source {source.code!r} produced no value.",
                )

        values_by_code: dict[str, object] = dict(inputs.raw_values)
        for src, upstream in computed.items():
            if upstream.ok:
                values_by_code[graph.metrics[src].code] = upstream.value
        by_code = plan.snapshot.metrics_by_code

        def is_required(code: str) -> bool:
            ref = by_code.get(code)
            return ref is not None and not ref.is_calculated and plan.effective[ref.metric_id].is_required

        evaluator = FormulaEvaluator(values_by_code.get, is_required)
        try:
            result = evaluator.evaluate(plan.expressions[idx], metric_code=metric.code)
        except FormulaError as exc:
            return outcome(MetricOutcomeStatus.ERROR, error_code=exc.code, detail=exc.message)

        if result.is_absent:
            cause = result.absent_inputs[0] if result.absent_inputs else None
            return outcome(
                MetricOutcomeStatus.SKIPPED,
                cause_code=cause,
                blocked_by=cause,
                detail="Formula has no value because optional inputs are missing.",
            )
        return outcome(MetricOutcomeStatus.VALUE, value=result.value)


def _ignore_state(_: CalculationRunState) -> None:
    return None
