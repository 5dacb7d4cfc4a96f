# src/esg_engine/application/use_cases/calculation/calculate_metrics.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Use case: Calculate every metric of a framework for an entity and period.

Purpose:
    Bridge catalog and raw value providers to the domain calculation
    orchestrator:
        - Serialize runs per (framework, entity, period).
        - Load the catalog snapshot and the submitted raw values.
        - Run the orchestrator off the event loop.
        - Log lifecycle events and record Prometheus metrics.

Layer:
    application/use_cases/calculation
"""

from __future__ import annotations

import asyncio
from contextlib import AbstractContextManager, nullcontext
from uuid import uuid4

from esg_engine.application.schemas.dto.calculation import CalculateRequestDTO, CalculationResultDTO
from esg_engine.application.services.calculation_locks import CalculationLockRegistry
from esg_engine.domain.entities.metric_catalog import CatalogSnapshot, RawValue
from esg_engine.domain.exceptions.base import DomainError
from esg_engine.domain.exceptions.calculation import (
    CalculationCancelled,
    CalculationLockTimeout,
    FrameworkNotFound,
    StructuralCatalogError,
)
from esg_engine.domain.interfaces.repositories.metric_catalog_provider import MetricCatalogProvider
from esg_engine.domain.interfaces.repositories.raw_value_provider import RawValueProvider
from esg_engine.domain.services.calculation_orchestrator import (
    CalculationOrchestrator,
    CancellationToken,
)
from esg_engine.infrastructure.logging.logger import (
    clear_run_context,
    get_json_logger,
    set_run_context,
)
from esg_engine.infrastructure.observability.metrics import (
    CalculationObservation,
    observe_calculation_run,
)

logger = get_json_logger(__name__)

_OUTCOME_BY_ERROR: dict[type[DomainError], str] = {
    StructuralCatalogError: "structural_error",
    CalculationCancelled: "cancelled",
    CalculationLockTimeout: "lock_timeout",
    FrameworkNotFound: "not_found",
}


def _outcome_label(exc: DomainError) -> str:
    for error_type, label in _OUTCOME_BY_ERROR.items():
        if isinstance(exc, error_type):
            return label
    return "error"


async def load_raw_values(
    snapshot: CatalogSnapshot,
    values: RawValueProvider,
    entity_id: str,
    period: str,
) -> dict[str, RawValue | None]:
    """Fetch the submitted value of every raw metric, keyed by metric code.

    Args:
        snapshot: Catalog snapshot.
        values: Raw value provider.
        entity_id: Reporting entity.
        period: Reporting period label.

    Returns:
        Mapping of metric code to value (None when nothing was submitted).
    """
    raw_metrics = [m for m in snapshot.metrics if not m.is_calculated]
    fetched = await asyncio.gather(
        *(values.get_value(m.metric_id, entity_id, period) for m in raw_metrics)
    )
    return {m.code: v for m, v in zip(raw_metrics, fetched, strict=True)}


class CalculateMetricsUseCase:
    """Calculate all metrics of a framework for one (entity, period).

    Args:
        catalog: Provider of catalog snapshots.
        values: Provider of submitted raw values.
        orchestrator: Domain orchestrator; a sequential one by default.
        locks: Lock registry shared by every caller that may calculate the
            same (framework, entity, period).
        metrics_enabled: Record Prometheus metrics when True.
    """

    def __init__(
        self,
        *,
        catalog: MetricCatalogProvider,
        values: RawValueProvider,
        orchestrator: CalculationOrchestrator | None = None,
        locks: CalculationLockRegistry | None = None,
        metrics_enabled: bool = True,
    ) -> None:
        """Initialize the use case."""
        self._catalog = catalog
        self._values = values
        self._orchestrator = orchestrator or CalculationOrchestrator()
        self._locks = locks or CalculationLockRegistry()
        self._metrics_enabled = metrics_enabled

    async def execute(
        self,
        req: CalculateRequestDTO,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> CalculationResultDTO:
        """Execute a calculation run.

        Args:
            req: Calculation request.
            cancel_token: Optional token; cancelling it stops dispatching new
                metrics and discards partial results.

        Returns:
            The published calculation result.

        Raises:
            FrameworkNotFound: Unknown framework.
            StructuralCatalogError: Unknown references, duplicates, or cycles.
            CalculationLockTimeout: Another run holds the lock for too long.
            CalculationCancelled: The run was cancelled.
        """
        run_id = str(uuid4())
        set_run_context(run_id=run_id, framework_id=req.framework_id)
        try:
            return await self._run(req, run_id, cancel_token or CancellationToken())
        finally:
            clear_run_context()

    async def _run(
        self,
        req: CalculateRequestDTO,
        run_id: str,
        token: CancellationToken,
    ) -> CalculationResultDTO:
        context = {
            "framework_id": req.framework_id,
            "industry_id": req.industry_id,
            "entity_id": req.entity_id,
            "period": req.period,
        }
        logger.info("calculation.started", extra={"extra": context})

        observation: AbstractContextManager[CalculationObservation] = (
            observe_calculation_run(framework_id=req.framework_id)
            if self._metrics_enabled
            else nullcontext(CalculationObservation(framework_id=req.framework_id))
        )
        with observation as obs:
            try:
                async with self._locks.hold(req.framework_id, req.entity_id, req.period):
                    snapshot = await self._catalog.get_catalog(req.framework_id)
                    raw = await load_raw_values(snapshot, self._values, req.entity_id, req.period)
                    try:
                        result = await asyncio.to_thread(
                            self._orchestrator.run,
                            snapshot,
                            raw,
                            industry_id=req.industry_id,
                            entity_id=req.entity_id,
                            period=req.period,
                            targets=req.targets,
                            cancel_token=token,
                        )
                    except asyncio.CancelledError:
                        token.cancel()
                        raise
            except DomainError as exc:
                obs.mark_error(_outcome_label(exc))
                logger.warning(
                    "calculation.failed",
                    extra={"extra": {**context, "error_code": exc.code, "details": exc.details}},
                )
                raise

            obs.record_result(result)
            duration_ms = obs.elapsed * 1000.0

        counts = {status.value: count for status, count in result.counts().items()}
        logger.info(
            "calculation.completed",
            extra={
                "extra": {
                    **context,
                    "outcomes": counts,
                    "validation_failures": len(result.validation_failures),
                    "duration_ms": round(duration_ms, 3),
                }
            },
        )
        return CalculationResultDTO.from_entity(
            result,
            run_id=run_id,
            codes_by_id={m.metric_id: m.code for m in snapshot.metrics},
            duration_ms=duration_ms,
        )
