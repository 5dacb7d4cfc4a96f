# src/esg_engine/domain/interfaces/repositories/metric_catalog_provider.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Metric catalog provider interface.

Purpose:
    Define how the calculation engine obtains an immutable snapshot of a
    framework's metric catalog.

Layer:
    domain/interfaces/repositories

Notes:
    Implementations own storage and lifecycle concerns. Soft-deleted and
    inactive metrics, edges, rules, and variations must be filtered out
    before the snapshot is returned; the engine never sees them.
"""

from __future__ import annotations

from typing import Protocol

from esg_engine.domain.entities.metric_catalog import CatalogSnapshot


class MetricCatalogProvider(Protocol):
    """Protocol for sources of framework catalog snapshots."""

    async def get_catalog(self, framework_id: str) -> CatalogSnapshot:
        """Return the catalog snapshot of a framework.

        Args:
            framework_id:
                Identifier of the reporting framework.

        Returns:
            Immutable snapshot of the framework's active catalog.

        Raises:
            FrameworkNotFound:
                If no framework with ``framework_id`` exists.
        """
