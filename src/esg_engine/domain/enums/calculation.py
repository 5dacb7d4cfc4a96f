# src/esg_engine/domain/enums/calculation.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Calculation run enumerations.

Purpose:
    Stable identifiers for calculation run states, per-metric outcome
    statuses, and validation failure reasons. All values are string
    identifiers suitable for JSON payloads and metric labels.

Layer:
    domain
"""

from __future__ import annotations

from enum import Enum


class CalculationRunState(str, Enum):
    """Lifecycle states of a single calculation run.

    The happy path is BUILT -> SORTED -> EVALUATING -> COMPLETED. Structural
    catalog errors and cancellation move the run to FAILED.
    """

    PENDING = "PENDING"
    BUILT = "BUILT"
    SORTED = "SORTED"
    EVALUATING = "EVALUATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class MetricOutcomeStatus(str, Enum):
    """Outcome of a single calculated metric within a completed run."""

    VALUE = "VALUE"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


class ValidationFailureReason(str, Enum):
    """Reasons a raw input value fails validation."""

    REQUIRED = "required"
    BELOW_MIN = "below_min"
    ABOVE_MAX = "above_max"
    PATTERN_MISMATCH = "pattern_mismatch"
    INVALID_PATTERN = "invalid_pattern"
    INVALID_TYPE = "invalid_type"
    UNKNOWN_METRIC = "unknown_metric"


__all__ = ["CalculationRunState", "MetricOutcomeStatus", "ValidationFailureReason"]
