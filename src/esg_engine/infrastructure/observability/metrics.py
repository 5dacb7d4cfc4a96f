# src/esg_engine/infrastructure/observability/metrics.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Prometheus metrics for calculation runs (registry-aware, hot-reload safe).

Collectors are created on first use against whatever
``prometheus_client.REGISTRY`` is active at that moment, so a test can swap
in a fresh registry and still see every series.

Exposed series:
    esg_calculation_duration_seconds{outcome}
    esg_calculation_runs_total{outcome}
    esg_metric_outcomes_total{status}
    esg_validation_failures_total{reason}

Example:
    with observe_calculation_run(framework_id="gri") as obs:
        result = orchestrator.run(...)
        obs.record_result(result)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager, suppress
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Final, TypeVar

import prometheus_client as prom
from prometheus_client import Counter, Histogram

from esg_engine.domain.entities.calculation_result import CalculationRunResult, ValidationFailed

_log = logging.getLogger(__name__)

__all__ = [
    "get_calculation_duration_seconds",
    "get_calculation_runs_total",
    "get_metric_outcomes_total",
    "get_validation_failures_total",
    "CalculationObservation",
    "observe_calculation_run",
    "record_validation_failures",
]

# Calculation runs are short; finer low-end buckets than request latency.
_BUCKETS: Final[tuple[float, ...]] = (
    0.001,
    0.005,
    0.010,
    0.025,
    0.050,
    0.100,
    0.250,
    0.500,
    1.000,
    2.500,
    5.000,
    10.000,
)

_Collector = TypeVar("_Collector", Histogram, Counter)

# Collectors by name, valid for the registry identified by ``_registry_id``.
_registry_id: int | None = None
_collectors: dict[str, Histogram | Counter] = {}
_lock = threading.RLock()


def _registered(name: str, kind: type[_Collector]) -> _Collector | None:
    """Return the collector ``name`` already on the active registry, if it is a ``kind``."""
    with suppress(Exception):
        col = getattr(prom.REGISTRY, "_names_to_collectors", {}).get(name)
        if isinstance(col, kind):
            return col
    return None


def _collector(
    kind: type[_Collector],
    name: str,
    help_text: str,
    labelnames: tuple[str, ...],
    **options: Any,
) -> _Collector:
    """Get or create ``kind`` on the active registry.

    Swapping ``prom.REGISTRY`` (tests do) drops the local cache. A collector
    that another import already registered is reused instead of tripping
    the duplicate-timeseries check.

    Args:
        kind: ``Histogram`` or ``Counter``.
        name: Series name; counters omit the ``_total`` suffix.
        help_text: Series description.
        labelnames: Label names.
        **options: Extra constructor arguments, e.g. ``buckets``.
    """
    global _registry_id
    with _lock:
        if _registry_id != id(prom.REGISTRY):
            _collectors.clear()
            _registry_id = id(prom.REGISTRY)

        cached = _collectors.get(name)
        if isinstance(cached, kind):
            return cached

        found = _registered(name, kind)
        if found is None:
            try:
                found = kind(name, help_text, labelnames, registry=prom.REGISTRY, **options)
            except ValueError:
                found = _registered(name, kind)
                if found is None:
                    _log.exception("Could not register %s %s", kind.__name__, name)
                    raise
        _collectors[name] = found
        return found


# ---------------------------------------------------------------------------
# Calculation metrics


def get_calculation_duration_seconds() -> Histogram:
    """Return histogram for calculation run latency.

    Labels:
        outcome: ``completed``, ``structural_error``, ``cancelled``,
            ``lock_timeout``, ``not_found`` or ``error``.
    """
    return _collector(
        Histogram,
        "esg_calculation_duration_seconds",
        "Latency (seconds) of ESG metric calculation runs.",
        ("outcome",),
        buckets=_BUCKETS,
    )


def get_calculation_runs_total() -> Counter:
    """Return counter for calculation runs by outcome."""
    return _collector(
        Counter,
        "esg_calculation_runs",
        "Total ESG metric calculation runs by outcome.",
        ("outcome",),
    )


def get_metric_outcomes_total() -> Counter:
    """Return counter for per-metric outcomes.

    Labels:
        status: ``VALUE``, ``SKIPPED`` or ``ERROR``.
    """
    return _collector(
        Counter,
        "esg_metric_outcomes",
        "Calculated metric outcomes by status.",
        ("status",),
    )


def get_validation_failures_total() -> Counter:
    """Return counter for raw input validation failures by reason."""
    return _collector(
        Counter,
        "esg_validation_failures",
        "Raw input validation failures by reason.",
        ("reason",),
    )


def record_validation_failures(failures: tuple[ValidationFailed, ...]) -> None:
    """Increment the validation failure counter for each failure."""
    counter = get_validation_failures_total()
    for failure in failures:
        counter.labels(reason=failure.reason.value).inc()


@dataclass
class CalculationObservation:
    """Mutable observation of a single calculation run.

    Attributes:
        framework_id: Framework being calculated (not used as a label).
        start: Monotonic start time in seconds.
        outcome: Outcome label recorded on exit.
        result: Published result, when the run completed.
    """

    framework_id: str
    start: float = field(default_factory=perf_counter)
    outcome: str = "completed"
    result: CalculationRunResult | None = None

    def mark_error(self, outcome: str) -> None:
        """Mark the run as failed with an outcome label."""
        self.outcome = outcome

    def record_result(self, result: CalculationRunResult) -> None:
        """Attach the published result for per-metric accounting."""
        self.result = result

    @property
    def elapsed(self) -> float:
        """Seconds since the observation started."""
        return perf_counter() - self.start


@contextmanager
def observe_calculation_run(*, framework_id: str) -> Generator[CalculationObservation, None, None]:
    """Observe a calculation run.

    Records a latency sample and a run counter increment labelled with the
    outcome, plus per-metric outcome and validation failure counts when a
    result was attached.

    Args:
        framework_id: Framework being calculated.

    Yields:
        A mutable :class:`CalculationObservation`.
    """
    obs = CalculationObservation(framework_id=framework_id)
    try:
        yield obs
    except Exception:
        if obs.outcome == "completed":
            obs.mark_error("error")
        raise
    finally:
        elapsed = obs.elapsed
        with suppress(Exception):
            get_calculation_duration_seconds().labels(outcome=obs.outcome).observe(elapsed)
            get_calculation_runs_total().labels(outcome=obs.outcome).inc()
            if obs.result is not None:
                outcomes = get_metric_outcomes_total()
                for status, count in obs.result.counts().items():
                    if count:
                        outcomes.labels(status=status.value).inc(count)
                record_validation_failures(obs.result.validation_failures)
