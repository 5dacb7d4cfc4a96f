# src/esg_engine/domain/interfaces/repositories/raw_value_provider.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Raw value provider interface.

Purpose:
    Define how the calculation engine reads submitted values of raw
    (non-calculated) metrics. Values are owned by the ingestion collaborator;
    the engine only reads them.

Layer:
    domain/interfaces/repositories
"""

from __future__ import annotations

from typing import Protocol

from esg_engine.domain.entities.metric_catalog import RawValue


class RawValueProvider(Protocol):
    """Protocol for sources of submitted raw metric values."""

    async def get_value(self, metric_id: str, entity_id: str, period: str) -> RawValue | None:
        """Return the submitted value for (metric, entity, period).

        Args:
            metric_id:
                Identifier of a non-calculated metric.
            entity_id:
                Reporting entity (organization or site).
            period:
                Reporting period label.

        Returns:
            The submitted literal, or None when nothing was submitted.
        """
