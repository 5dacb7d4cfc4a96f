# src/esg_engine/application/use_cases/calculation/analyze_impact.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Use case: List metrics affected by a change to one metric.

Purpose:
    Answer "which calculated values must be recomputed if this input
    changes?" over the same graph a calculation run would use, i.e. declared
    edges plus edges inferred from the industry's effective formulas.

Layer:
    application/use_cases/calculation
"""

from __future__ import annotations

from esg_engine.application.schemas.dto.calculation import ImpactRequestDTO, ImpactResultDTO
from esg_engine.domain.exceptions.calculation import UnknownMetricReference
from esg_engine.domain.interfaces.repositories.metric_catalog_provider import MetricCatalogProvider
from esg_engine.domain.services.calculation_orchestrator import CalculationOrchestrator
from esg_engine.domain.services.impact_analyzer import ordered_impact
from esg_engine.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


class AnalyzeImpactUseCase:
    """Compute the transitive impact of a metric change."""

    def __init__(
        self,
        *,
        catalog: MetricCatalogProvider,
        orchestrator: CalculationOrchestrator | None = None,
    ) -> None:
        """Initialize the use case."""
        self._catalog = catalog
        self._orchestrator = orchestrator or CalculationOrchestrator()

    async def execute(self, req: ImpactRequestDTO) -> ImpactResultDTO:
        """Return affected metric codes in evaluation order.

        Raises:
            FrameworkNotFound: Unknown framework.
            UnknownMetricReference: Unknown metric code.
            CycleDetected: The catalog is cyclic.
        """
        snapshot = await self._catalog.get_catalog(req.framework_id)
        metric = snapshot.metrics_by_code.get(req.metric_code)
        if metric is None:
            raise UnknownMetricReference(req.metric_code, context="impact analysis")

        plan = self._orchestrator.prepare(snapshot, req.industry_id)
        affected = ordered_impact(plan.graph, metric.metric_id)
        codes = [snapshot.metrics_by_id[mid].code for mid in affected]

        logger.info(
            "impact.analyzed",
            extra={
                "extra": {
                    "framework_id": req.framework_id,
                    "metric_code": req.metric_code,
                    "affected": len(codes),
                }
            },
        )
        return ImpactResultDTO(framework_id=req.framework_id, metric_code=req.metric_code, affected=codes)
