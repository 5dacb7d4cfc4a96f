# tests/conftest.py
from __future__ import annotations

from collections.abc import Generator
from decimal import Decimal

import prometheus_client as prom
import pytest
from prometheus_client import CollectorRegistry

from esg_engine.config.settings import get_settings
from esg_engine.domain.entities.metric_catalog import (
    CatalogSnapshot,
    DependencyEdge,
    IndustryVariation,
    Metric,
    ValidationRule,
    ValidationRuleOverride,
)
from esg_engine.domain.enums.metric_data_type import MetricDataType


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio (not trio)."""
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    """Settings are cached per process; tests that patch env need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fresh_registry(monkeypatch: pytest.MonkeyPatch) -> CollectorRegistry:
    """Swap the default Prometheus registry for an empty one."""
    registry = CollectorRegistry()
    monkeypatch.setattr(prom, "REGISTRY", registry)
    return registry


@pytest.fixture
def energy_snapshot() -> CatalogSnapshot:
    """Small energy catalog with a two-level calculation chain.

    ENERGY-TOTAL     = SUM(ENERGY-ELEC, ENERGY-FUEL)
    ENERGY-INTENSITY = DIVIDE(ENERGY-TOTAL, REVENUE)

    The "mining" industry scales intensity per thousand and makes REVENUE
    optional.
    """
    metrics = (
        Metric("m-elec", "ENERGY-ELEC", "Electricity", sort_order=1, unit="MWh"),
        Metric("m-fuel", "ENERGY-FUEL", "Fuel", sort_order=2, unit="MWh"),
        Metric("m-rev", "REVENUE", "Revenue", MetricDataType.CURRENCY, sort_order=3),
        Metric(
            "m-total",
            "ENERGY-TOTAL",
            "Total energy",
            is_calculated=True,
            formula="SUM(ENERGY-ELEC, ENERGY-FUEL)",
            sort_order=10,
        ),
        Metric(
            "m-intensity",
            "ENERGY-INTENSITY",
            "Energy intensity",
            is_calculated=True,
            formula="DIVIDE(ENERGY-TOTAL, REVENUE)",
            sort_order=11,
        ),
    )
    edges = (
        DependencyEdge("m-total", "m-elec"),
        DependencyEdge("m-total", "m-fuel"),
        DependencyEdge("m-intensity", "m-total"),
        DependencyEdge("m-intensity", "m-rev"),
    )
    rules = {
        "m-elec": ValidationRule(min_value="0"),
        "m-fuel": ValidationRule(min_value="0"),
        "m-rev": ValidationRule(min_value="0", is_required=True),
    }
    variations = (
        IndustryVariation(
            industry_id="mining",
            metric_id="m-intensity",
            weight=Decimal("0.5"),
            override_formula="ENERGY-TOTAL / REVENUE * 1000",
        ),
        IndustryVariation(
            industry_id="mining",
            metric_id="m-rev",
            override_validation=ValidationRuleOverride(is_required=False),
        ),
    )
    return CatalogSnapshot(
        framework_id="energy",
        metrics=metrics,
        edges=edges,
        validation_rules=rules,
        industry_variations=variations,
        base_weights={"m-intensity": Decimal("1")},
    )
