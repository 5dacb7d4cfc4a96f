# tests/unit/application/calculation/test_calculate_metrics.py
# Copyright (c)
# SPDX-License-Identifier: MIT

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from esg_engine.adapters.repositories.in_memory_catalog_repository import (
    InMemoryMetricCatalogRepository,
)
from esg_engine.adapters.repositories.in_memory_raw_value_repository import (
    InMemoryRawValueRepository,
)
from esg_engine.application.schemas.dto.calculation import CalculateRequestDTO
from esg_engine.application.services.calculation_locks import CalculationLockRegistry
from esg_engine.application.use_cases.calculation.calculate_metrics import (
    CalculateMetricsUseCase,
    load_raw_values,
)
from esg_engine.domain.entities.metric_catalog import CatalogSnapshot
from esg_engine.domain.enums.calculation import CalculationRunState, MetricOutcomeStatus
from esg_engine.domain.exceptions.calculation import (
    CalculationCancelled,
    CalculationLockTimeout,
    FrameworkNotFound,
)
from esg_engine.domain.services.calculation_orchestrator import CancellationToken
from esg_engine.infrastructure.logging.logger import get_framework_id, get_run_id


def _values() -> InMemoryRawValueRepository:
    store = InMemoryRawValueRepository()
    store.put_many("acme", "2024", {"m-elec": 30, "m-fuel": 20, "m-rev": 100})
    return store


def _request(**overrides: object) -> CalculateRequestDTO:
    data: dict[str, object] = {"framework_id": "energy", "entity_id": "acme", "period": "2024"}
    data.update(overrides)
    return CalculateRequestDTO(**data)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_load_raw_values_keys_by_code(energy_snapshot: CatalogSnapshot) -> None:
    values = await load_raw_values(energy_snapshot, _values(), "acme", "2024")

    assert values == {"ENERGY-ELEC": 30, "ENERGY-FUEL": 20, "REVENUE": 100}


@pytest.mark.anyio
async def test_execute_returns_published_result(
    energy_snapshot: CatalogSnapshot,
    fresh_registry: CollectorRegistry,
) -> None:
    uc = CalculateMetricsUseCase(
        catalog=InMemoryMetricCatalogRepository([energy_snapshot]),
        values=_values(),
    )

    dto = await uc.execute(_request(industry_id="mining"))

    assert dto.state is CalculationRunState.COMPLETED
    assert dto.order == ["ENERGY-ELEC", "ENERGY-FUEL", "REVENUE", "ENERGY-TOTAL", "ENERGY-INTENSITY"]
    by_code = {o.metric_code: o for o in dto.outcomes}
    assert by_code["ENERGY-TOTAL"].value == 50.0
    assert by_code["ENERGY-INTENSITY"].value == 500.0
    assert by_code["ENERGY-INTENSITY"].weight == "0.5"
    assert dto.counts[MetricOutcomeStatus.VALUE] == 2
    assert dto.run_id
    assert dto.duration_ms >= 0.0

    runs = fresh_registry.get_sample_value("esg_calculation_runs_total", {"outcome": "completed"})
    assert runs == 1.0
    values = fresh_registry.get_sample_value("esg_metric_outcomes_total", {"status": "VALUE"})
    assert values == 2.0


@pytest.mark.anyio
async def test_unknown_framework_is_recorded_and_raised(fresh_registry: CollectorRegistry) -> None:
    uc = CalculateMetricsUseCase(
        catalog=InMemoryMetricCatalogRepository(),
        values=InMemoryRawValueRepository(),
    )

    with pytest.raises(FrameworkNotFound):
        await uc.execute(_request(framework_id="missing"))

    runs = fresh_registry.get_sample_value("esg_calculation_runs_total", {"outcome": "not_found"})
    assert runs == 1.0


@pytest.mark.anyio
async def test_cancelled_token_aborts_the_run(
    energy_snapshot: CatalogSnapshot,
    fresh_registry: CollectorRegistry,
) -> None:
    token = CancellationToken()
    token.cancel()
    uc = CalculateMetricsUseCase(
        catalog=InMemoryMetricCatalogRepository([energy_snapshot]),
        values=_values(),
    )

    with pytest.raises(CalculationCancelled):
        await uc.execute(_request(), cancel_token=token)

    runs = fresh_registry.get_sample_value("esg_calculation_runs_total", {"outcome": "cancelled"})
    assert runs == 1.0


@pytest.mark.anyio
async def test_concurrent_run_for_same_triple_times_out(energy_snapshot: CatalogSnapshot) -> None:
    locks = CalculationLockRegistry(timeout_s=0.01)
    uc = CalculateMetricsUseCase(
        catalog=InMemoryMetricCatalogRepository([energy_snapshot]),
        values=_values(),
        locks=locks,
        metrics_enabled=False,
    )

    async with locks.hold("energy", "acme", "2024"):
        with pytest.raises(CalculationLockTimeout):
            await uc.execute(_request())

    # Another period is independent.
    dto = await uc.execute(_request(period="2025"))
    assert dto.period == "2025"


@pytest.mark.anyio
async def test_targets_are_forwarded(energy_snapshot: CatalogSnapshot) -> None:
    uc = CalculateMetricsUseCase(
        catalog=InMemoryMetricCatalogRepository([energy_snapshot]),
        values=_values(),
        metrics_enabled=False,
    )

    dto = await uc.execute(_request(targets=["ENERGY-TOTAL"]))

    assert [o.metric_code for o in dto.outcomes] == ["ENERGY-TOTAL"]


@pytest.mark.anyio
async def test_run_context_is_cleared_after_execute(
    energy_snapshot: CatalogSnapshot,
    fresh_registry: CollectorRegistry,
) -> None:
    uc = CalculateMetricsUseCase(
        catalog=InMemoryMetricCatalogRepository([energy_snapshot]),
        values=_values(),
    )

    await uc.execute(_request())
    assert get_run_id() is None
    assert get_framework_id() is None

    with pytest.raises(FrameworkNotFound):
        await uc.execute(_request(framework_id="missing"))
    assert get_run_id() is None
    assert get_framework_id() is None
