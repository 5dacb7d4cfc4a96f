# src/esg_engine/application/use_cases/calculation/describe_framework.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Use case: Describe the structure of a framework catalog.

Purpose:
    Report metric counts, dependency edge count, and the dependency levels
    (calculation depth) of a framework, as seen by a calculation run for the
    given industry.

Layer:
    application/use_cases/calculation
"""

from __future__ import annotations

from collections import Counter

from esg_engine.application.schemas.dto.calculation import FrameworkStatisticsDTO
from esg_engine.domain.interfaces.repositories.metric_catalog_provider import MetricCatalogProvider
from esg_engine.domain.services.calculation_orchestrator import CalculationOrchestrator
from esg_engine.domain.services.topological_sort import calculation_levels


class DescribeFrameworkUseCase:
    """Compute framework statistics."""

    def __init__(
        self,
        *,
        catalog: MetricCatalogProvider,
        orchestrator: CalculationOrchestrator | None = None,
    ) -> None:
        """Initialize the use case."""
        self._catalog = catalog
        self._orchestrator = orchestrator or CalculationOrchestrator()

    async def execute(self, framework_id: str, industry_id: str | None = None) -> FrameworkStatisticsDTO:
        """Return statistics for a framework.

        Raises:
            FrameworkNotFound: Unknown framework.
            StructuralCatalogError: Unknown references, duplicates, or cycles.
        """
        snapshot = await self._catalog.get_catalog(framework_id)
        plan = self._orchestrator.prepare(snapshot, industry_id)
        graph = plan.graph
        levels = calculation_levels(graph)
        by_id = snapshot.metrics_by_id

        calculated = sum(1 for m in snapshot.metrics if m.is_calculated)
        by_type = Counter(m.data_type.value for m in snapshot.metrics)
        return FrameworkStatisticsDTO(
            framework_id=framework_id,
            total_metrics=len(snapshot.metrics),
            raw_metrics=len(snapshot.metrics) - calculated,
            calculated_metrics=calculated,
            required_metrics=sum(1 for e in plan.effective.values() if e.is_required),
            edge_count=graph.edge_count,
            calculation_depth=len(levels),
            levels=[[by_id[mid].code for mid in level] for level in levels],
            metrics_by_data_type=dict(sorted(by_type.items())),
            industry_variations=len(snapshot.industry_variations),
        )
