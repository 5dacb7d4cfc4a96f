# src/esg_engine/config/settings.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""ESG Engine Configuration (Pydantic Settings, v2)

Summary:
    Typed, validated configuration for the calculation engine. This module
    centralizes environment parsing and is safe to import from any layer;
    only the CLI and composition code should call :func:`get_settings`.
    Use cases and domain services receive plain values.

Variables:
    ENVIRONMENT, LOG_LEVEL, ESG_ENGINE_MAX_WORKERS (1-64),
    ESG_ENGINE_PARALLEL_THRESHOLD, ESG_ENGINE_LOCK_TIMEOUT_S,
    ESG_ENGINE_METRICS_ENABLED. Unknown fields are rejected.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Environment(str, Enum):
    """Logical deployment environment."""

    DEVELOPMENT = "development"
    TEST = "test"
    CI = "ci"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Typed configuration for the ESG calculation engine."""

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Logical deployment environment.",
        validation_alias="ENVIRONMENT",
    )

    log_level: LogLevel = Field(
        default="INFO",
        description="Root log level for the JSON logger.",
        validation_alias="LOG_LEVEL",
    )

    # ---------------------------
    # Calculation engine
    # ---------------------------
    max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Worker threads used by the calculation DAG scheduler (1 = sequential).",
        validation_alias="ESG_ENGINE_MAX_WORKERS",
    )

    parallel_threshold: int = Field(
        default=8,
        ge=0,
        le=100_000,
        description="Minimum number of calculated metrics before the worker pool is used.",
        validation_alias="ESG_ENGINE_PARALLEL_THRESHOLD",
    )

    lock_timeout_s: float = Field(
        default=30.0,
        gt=0.0,
        le=3600.0,
        description=(
            "Seconds to wait for the (framework, entity, period) calculation lock "
            "before failing with CalculationLockTimeout."
        ),
        validation_alias="ESG_ENGINE_LOCK_TIMEOUT_S",
    )

    # ---------------------------
    # Observability
    # ---------------------------
    metrics_enabled: bool = Field(
        default=True,
        description="Record Prometheus calculation metrics.",
        validation_alias="ESG_ENGINE_METRICS_ENABLED",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="forbid",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        """Accept lower-case level names (``info`` -> ``INFO``)."""
        if isinstance(value, str):
            return value.strip().upper()
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read the environment once per process and return the engine settings.

    Tests call ``get_settings.cache_clear()`` after patching the environment.

    Raises:
        RuntimeError: If configuration is invalid.
    """
    try:
        settings = Settings()
        logger.info(
            "Settings initialized",
            extra={
                "extra": {
                    "environment": settings.environment.value,
                    "log_level": settings.log_level,
                    "max_workers": settings.max_workers,
                    "parallel_threshold": settings.parallel_threshold,
                    "lock_timeout_s": settings.lock_timeout_s,
                    "metrics_enabled": settings.metrics_enabled,
                }
            },
        )
        return settings
    except ValidationError as exc:
        logger.exception("Invalid engine configuration")
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


__all__ = ["Environment", "Settings", "get_settings"]
