# src/esg_engine/adapters/repositories/in_memory_raw_value_repository.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""In-memory implementation of the raw value provider.

Layer:
    adapters/repositories
"""

from __future__ import annotations

from collections.abc import Mapping

from esg_engine.domain.entities.metric_catalog import RawValue
from esg_engine.domain.interfaces.repositories.raw_value_provider import RawValueProvider


class InMemoryRawValueRepository(RawValueProvider):
    """Dictionary-backed store of raw values keyed by (metric_id, entity_id, period)."""

    def __init__(self) -> None:
        self._values: dict[tuple[str, str, str], RawValue] = {}

    def put(self, metric_id: str, entity_id: str, period: str, value: RawValue | None) -> None:
        """Store a value; ``None`` removes any previously stored value."""
        key = (metric_id, entity_id, period)
        if value is None:
            self._values.pop(key, None)
        else:
            self._values[key] = value

    def put_many(self, entity_id: str, period: str, values: Mapping[str, RawValue | None]) -> None:
        """Store several values of one (entity, period), keyed by metric id."""
        for metric_id, value in values.items():
            self.put(metric_id, entity_id, period, value)

    async def get_value(self, metric_id: str, entity_id: str, period: str) -> RawValue | None:
        """Return the stored value, or None when nothing was submitted."""
        return self._values.get((metric_id, entity_id, period))
