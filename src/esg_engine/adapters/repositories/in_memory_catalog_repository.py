# src/esg_engine/adapters/repositories/in_memory_catalog_repository.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""In-memory implementation of the metric catalog provider.

Purpose:
    Hold catalog snapshots keyed by framework id. Used by the CLI (catalogs
    loaded from JSON documents) and by tests.

Layer:
    adapters/repositories
"""

from __future__ import annotations

from esg_engine.domain.entities.metric_catalog import CatalogSnapshot
from esg_engine.domain.exceptions.calculation import FrameworkNotFound
from esg_engine.domain.interfaces.repositories.metric_catalog_provider import (
    MetricCatalogProvider,
)


class InMemoryMetricCatalogRepository(MetricCatalogProvider):
    """Dictionary-backed catalog provider."""

    def __init__(self, snapshots: list[CatalogSnapshot] | None = None) -> None:
        self._snapshots: dict[str, CatalogSnapshot] = {}
        for snapshot in snapshots or ():
            self.add(snapshot)

    def add(self, snapshot: CatalogSnapshot) -> None:
        """Register (or replace) the snapshot of a framework."""
        self._snapshots[snapshot.framework_id] = snapshot

    async def get_catalog(self, framework_id: str) -> CatalogSnapshot:
        """Return the snapshot of ``framework_id``.

        Raises:
            FrameworkNotFound: If no snapshot was registered for the framework.
        """
        try:
            return self._snapshots[framework_id]
        except KeyError:
            raise FrameworkNotFound(
                f"Framework {framework_id!r} not found.",
                details={"framework_id": framework_id},
            ) from None
