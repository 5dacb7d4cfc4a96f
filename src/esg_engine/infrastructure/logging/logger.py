# src/esg_engine/infrastructure/logging/logger.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""JSON logging for calculation runs.

Purpose:
    Emit one JSON object per log line so calculation events
    (``calculation.started``, ``calculation.completed``, ...) can be grepped
    and shipped as-is.

Layer:
    infrastructure/logging

Notes:
    - Every line carries ``ts``, ``level``, ``logger`` and ``message``.
    - ``run_id`` and ``framework_id`` come from the record, then the run
      context set by :func:`set_run_context`; ``run_id`` finally falls back
      to ``ESG_ENGINE_RUN_ID``.
    - Fields passed as ``extra={"extra": {...}}`` are merged into the line.
    - The CLI calls :func:`configure_root_logging` once; library code only
      asks for loggers.
"""

from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "configure_root_logging",
    "get_json_logger",
    "set_run_context",
    "clear_run_context",
    "get_run_id",
    "get_framework_id",
]

_RUN_ID_ENV_KEY = "ESG_ENGINE_RUN_ID"

# Per-run correlation context (task-local via contextvars).
_RUN_ID_CTX: ContextVar[str | None] = ContextVar("esg_run_id", default=None)
_FRAMEWORK_ID_CTX: ContextVar[str | None] = ContextVar("esg_framework_id", default=None)


def set_run_context(*, run_id: str | None = None, framework_id: str | None = None) -> None:
    """Set per-run correlation identifiers on the current context.

    Args:
        run_id: Identifier of the calculation run, if any.
        framework_id: Framework the run operates on, if any.

    Notes:
        This function is additive: passing only one of the arguments updates
        that value and leaves the other unchanged.
    """
    if run_id is not None:
        _RUN_ID_CTX.set(run_id)
    if framework_id is not None:
        _FRAMEWORK_ID_CTX.set(framework_id)


def clear_run_context() -> None:
    """Reset both correlation identifiers on the current context."""
    _RUN_ID_CTX.set(None)
    _FRAMEWORK_ID_CTX.set(None)


def get_run_id() -> str | None:
    """Return the current run id from contextvars, if any."""
    return _RUN_ID_CTX.get(None)


def get_framework_id() -> str | None:
    """Return the current framework id from contextvars, if any."""
    return _FRAMEWORK_ID_CTX.get(None)


class _JsonFormatter(logging.Formatter):
    """Render records as compact JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Run id enrichment: record attribute, then contextvar, then env.
        rid: str | None = (
            getattr(record, "run_id", None) or _RUN_ID_CTX.get(None) or os.getenv(_RUN_ID_ENV_KEY)
        )
        if rid:
            payload["run_id"] = rid

        fid: str | None = getattr(record, "framework_id", None) or _FRAMEWORK_ID_CTX.get(None)
        if fid:
            payload["framework_id"] = fid

        # Exceptions: guard against None in exc_info tuple.
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            if exc_type is not None:
                payload["exc_type"] = exc_type.__name__
            if exc_value is not None:
                payload["exc_message"] = str(exc_value)

        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def configure_root_logging(level: str | int | None = None) -> None:
    """Attach the JSON handler to the root logger; repeated calls only reset the level.

    Args:
        level: Level or level name; defaults to ``LOG_LEVEL``, then ``INFO``.
    """
    root = logging.getLogger()

    env_level = os.getenv("LOG_LEVEL")
    resolved: int | str = (
        level if level is not None else (env_level.upper() if env_level else "INFO")
    )
    root.setLevel(resolved)

    if any(isinstance(h.formatter, _JsonFormatter) for h in root.handlers):
        # Already configured; prevent duplicate handlers.
        return

    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter())
    root.addHandler(handler)


def get_json_logger(name: str) -> logging.Logger:
    """Return a propagating logger for ``name``; the root handler does the formatting."""
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
