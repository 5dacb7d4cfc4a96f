# src/esg_engine/domain/enums/metric_data_type.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Metric data type enumeration.

Purpose:
    Define the closed set of value types a framework metric can declare. The
    data type drives how raw values are coerced for formula evaluation and how
    validation thresholds are compared.

Layer:
    domain

Notes:
    - Values are the lowercase identifiers stored in metric catalogs.
    - NUMERIC_DATA_TYPES groups the types compared numerically by the
      validation engine.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class MetricDataType(str, Enum):
    """Value type declared by a metric."""

    NUMERIC = "numeric"
    PERCENTAGE = "percentage"
    CURRENCY = "currency"
    BOOLEAN = "boolean"
    TEXT = "text"
    DATE = "date"

    @classmethod
    def parse(cls, raw: str) -> MetricDataType:
        """Parse a catalog data type string, tolerating case and whitespace.

        Args:
            raw: Data type identifier as stored in the catalog.

        Returns:
            The matching enum member.

        Raises:
            ValueError: If the identifier is not a supported data type.
        """
        return cls(raw.strip().lower())


NUMERIC_DATA_TYPES: Final[frozenset[MetricDataType]] = frozenset(
    {
        MetricDataType.NUMERIC,
        MetricDataType.PERCENTAGE,
        MetricDataType.CURRENCY,
    }
)

__all__ = ["MetricDataType", "NUMERIC_DATA_TYPES"]
