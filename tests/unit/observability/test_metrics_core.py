# tests/unit/observability/test_metrics_core.py
from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from esg_engine.domain.entities.calculation_result import (
    CalculationRunResult,
    MetricOutcome,
    ValidationFailed,
)
from esg_engine.domain.enums.calculation import (
    CalculationRunState,
    MetricOutcomeStatus,
    ValidationFailureReason,
)
from esg_engine.infrastructure.observability.metrics import (
    get_calculation_duration_seconds,
    get_calculation_runs_total,
    observe_calculation_run,
    record_validation_failures,
)


def _result() -> CalculationRunResult:
    return CalculationRunResult(
        framework_id="gri",
        industry_id=None,
        entity_id="acme",
        period="2024",
        state=CalculationRunState.COMPLETED,
        order=("a", "b", "c"),
        outcomes=(
            MetricOutcome("b", "B", MetricOutcomeStatus.VALUE, value=1.0),
            MetricOutcome("c", "C", MetricOutcomeStatus.SKIPPED, cause_code="A"),
        ),
        validation_failures=(ValidationFailed("A", ValidationFailureReason.REQUIRED),),
    )


def test_collectors_are_singletons_per_registry(fresh_registry: CollectorRegistry) -> None:
    """Collectors should be reused while the registry is unchanged."""
    assert get_calculation_duration_seconds() is get_calculation_duration_seconds()
    assert get_calculation_runs_total() is get_calculation_runs_total()


def test_collectors_follow_registry_swaps(monkeypatch: pytest.MonkeyPatch) -> None:
    """Swapping the default registry yields fresh collectors bound to it."""
    import prometheus_client as prom

    first = CollectorRegistry()
    monkeypatch.setattr(prom, "REGISTRY", first)
    c1 = get_calculation_runs_total()

    second = CollectorRegistry()
    monkeypatch.setattr(prom, "REGISTRY", second)
    c2 = get_calculation_runs_total()

    assert c1 is not c2
    c2.labels(outcome="completed").inc()
    assert second.get_sample_value("esg_calculation_runs_total", {"outcome": "completed"}) == 1.0
    assert first.get_sample_value("esg_calculation_runs_total", {"outcome": "completed"}) is None


def test_observe_calculation_run_records_result(fresh_registry: CollectorRegistry) -> None:
    """A completed run records latency, run count, outcomes and failures."""
    with observe_calculation_run(framework_id="gri") as obs:
        obs.record_result(_result())

    sample = fresh_registry.get_sample_value
    assert sample("esg_calculation_runs_total", {"outcome": "completed"}) == 1.0
    assert sample("esg_calculation_duration_seconds_count", {"outcome": "completed"}) == 1.0
    assert sample("esg_metric_outcomes_total", {"status": "VALUE"}) == 1.0
    assert sample("esg_metric_outcomes_total", {"status": "SKIPPED"}) == 1.0
    assert sample("esg_metric_outcomes_total", {"status": "ERROR"}) is None
    assert sample("esg_validation_failures_total", {"reason": "required"}) == 1.0


def test_observe_calculation_run_labels_errors(fresh_registry: CollectorRegistry) -> None:
    """Unmarked exceptions are labelled "error"; marked ones keep their label."""
    with pytest.raises(RuntimeError), observe_calculation_run(framework_id="gri"):
        raise RuntimeError("boom")

    with pytest.raises(KeyError), observe_calculation_run(framework_id="gri") as obs:
        obs.mark_error("structural_error")
        raise KeyError("x")

    sample = fresh_registry.get_sample_value
    assert sample("esg_calculation_runs_total", {"outcome": "error"}) == 1.0
    assert sample("esg_calculation_runs_total", {"outcome": "structural_error"}) == 1.0


def test_record_validation_failures(fresh_registry: CollectorRegistry) -> None:
    record_validation_failures(
        (
            ValidationFailed("A", ValidationFailureReason.BELOW_MIN),
            ValidationFailed("B", ValidationFailureReason.BELOW_MIN),
        )
    )

    assert fresh_registry.get_sample_value(
        "esg_validation_failures_total", {"reason": "below_min"}
    ) == 2.0
