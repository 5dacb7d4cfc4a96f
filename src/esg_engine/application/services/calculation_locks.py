# src/esg_engine/application/services/calculation_locks.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Logical exclusivity for calculation runs.

Purpose:
    Guarantee that at most one calculation run is in flight per
    (framework_id, entity_id, period). Runs for different triples never
    contend.

Layer:
    application/services

Notes:
    - Locks are ``asyncio.Lock`` instances and are only valid within a single
      event loop.
    - Lock entries are dropped once no task holds or waits for them, so the
      registry does not grow with the number of distinct triples seen.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from esg_engine.domain.exceptions.calculation import CalculationLockTimeout

__all__ = ["CalculationLockRegistry", "LockKey"]

LockKey = tuple[str, str, str]


class CalculationLockRegistry:
    """Registry of per-(framework, entity, period) asyncio locks.

    Args:
        timeout_s: Default seconds to wait for a lock before giving up.
    """

    def __init__(self, *, timeout_s: float = 30.0) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self._timeout_s = timeout_s
        self._locks: dict[LockKey, asyncio.Lock] = {}
        self._users: dict[LockKey, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, framework_id: str, entity_id: str, period: str) -> bool:
        """Return True when a run currently holds the lock for the triple."""
        lock = self._locks.get((framework_id, entity_id, period))
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(
        self,
        framework_id: str,
        entity_id: str,
        period: str,
        *,
        timeout_s: float | None = None,
    ) -> AsyncIterator[None]:
        """Hold the lock for (framework_id, entity_id, period).

        Args:
            framework_id: Framework being calculated.
            entity_id: Reporting entity.
            period: Reporting period label.
            timeout_s: Optional override of the default timeout.

        Raises:
            CalculationLockTimeout: If the lock is not acquired in time.
        """
        key: LockKey = (framework_id, entity_id, period)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        wait_s = self._timeout_s if timeout_s is None else timeout_s
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=wait_s)
            except TimeoutError:
                raise CalculationLockTimeout(
                    "Timed out waiting for the calculation lock.",
                    details={
                        "framework_id": framework_id,
                        "entity_id": entity_id,
                        "period": period,
                        "timeout_s": wait_s,
                    },
                ) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
