# src/esg_engine/application/use_cases/calculation/validate_raw_inputs.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Use case: Validate submitted raw values against effective rules.

Layer:
    application/use_cases/calculation
"""

from __future__ import annotations

from esg_engine.application.schemas.dto.calculation import ValidateRequestDTO, ValidationFailureDTO
from esg_engine.domain.interfaces.repositories.metric_catalog_provider import MetricCatalogProvider
from esg_engine.domain.services.override_resolver import OverrideResolver
from esg_engine.domain.services.validation_engine import ValidationEngine
from esg_engine.infrastructure.logging.logger import get_json_logger
from esg_engine.infrastructure.observability.metrics import record_validation_failures

logger = get_json_logger(__name__)


class ValidateRawInputsUseCase:
    """Validate raw values for a framework, honoring industry overrides."""

    def __init__(
        self,
        *,
        catalog: MetricCatalogProvider,
        resolver: OverrideResolver | None = None,
        validator: ValidationEngine | None = None,
        metrics_enabled: bool = True,
    ) -> None:
        """Initialize the use case."""
        self._catalog = catalog
        self._resolver = resolver or OverrideResolver()
        self._validator = validator or ValidationEngine()
        self._metrics_enabled = metrics_enabled

    async def execute(self, req: ValidateRequestDTO) -> tuple[ValidationFailureDTO, ...]:
        """Validate the submitted values.

        Args:
            req: Validation request with values keyed by metric code.

        Returns:
            Ordered failures; empty when every check passed.

        Raises:
            FrameworkNotFound: Unknown framework.
        """
        snapshot = await self._catalog.get_catalog(req.framework_id)
        effective = self._resolver.resolve_all(snapshot, req.industry_id)
        rules = {metric_id: eff.rule for metric_id, eff in effective.items()}

        failures = self._validator.validate(snapshot.metrics, rules, req.values)
        if self._metrics_enabled:
            record_validation_failures(failures)

        logger.info(
            "validation.completed",
            extra={
                "extra": {
                    "framework_id": req.framework_id,
                    "industry_id": req.industry_id,
                    "values": len(req.values),
                    "failures": len(failures),
                }
            },
        )
        return tuple(ValidationFailureDTO.from_entity(f) for f in failures)
