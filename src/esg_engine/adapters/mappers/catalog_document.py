# src/esg_engine/adapters/mappers/catalog_document.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Catalog and values JSON document mapping.

Purpose:
    Parse JSON catalog documents and raw value documents into pure-domain
    structures without leaking document details into the domain or
    application layers.

Catalog document shape (metrics, edges, and variations refer to metrics by
code; ``id`` defaults to the code):

    {
      "framework_id": "gri-2021",
      "metrics": [
        {"code": "305-1", "name": "Scope 1 emissions", "data_type": "numeric",
         "validation": {"min_value": "0", "is_required": true}},
        {"code": "INTENSITY", "is_calculated": true, "formula": "305-1 / REVENUE",
         "weight": "0.5"}
      ],
      "dependencies": [{"dependent": "INTENSITY", "source": "305-1"}],
      "industry_variations": [
        {"industry_id": "mining", "metric": "INTENSITY",
         "override_formula": "305-1 / OUTPUT",
         "override_validation": {"max_value": "1000"}}
      ]
    }

Values document shape:

    {"entity_id": "acme", "period": "2024", "values": {"305-1": 120.5}}

Layer:
    adapters/mappers

Notes:
    - Dependencies and variations naming unknown codes are passed through
      with the code as metric id, so the engine reports them as
      UnknownMetricReference (or the integrity checker as issues).
    - A ``validation`` object that omits ``is_required`` makes the metric
      required; a metric without ``validation`` is optional.
    - Malformed documents raise CatalogDocumentError.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from esg_engine.domain.entities.metric_catalog import (
    CatalogSnapshot,
    DependencyEdge,
    IndustryVariation,
    Metric,
    RawValue,
    ValidationRule,
    ValidationRuleOverride,
)
from esg_engine.domain.enums.metric_data_type import MetricDataType
from esg_engine.domain.exceptions.base import DomainError

__all__ = [
    "CatalogDocumentError",
    "ValuesDocument",
    "parse_catalog_document",
    "parse_values_document",
    "values_by_metric_id",
    "load_catalog_file",
    "load_values_file",
]


class CatalogDocumentError(DomainError):
    """Raised when a catalog or values document is malformed."""

    code = "CATALOG_DOCUMENT_ERROR"


class _DocumentModel(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class _RuleDoc(_DocumentModel):
    min_value: str | None = None
    max_value: str | None = None
    is_required: bool | None = None
    pattern: str | None = None
    error_message: str | None = None

    @field_validator("min_value", "max_value", mode="before")
    @classmethod
    def _bound_to_text(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("bounds must be numbers or strings")
        if isinstance(value, (int, float)):
            return str(value)
        return value


class _MetricDoc(_DocumentModel):
    id: str | None = None
    code: str = Field(min_length=1)
    name: str = ""
    data_type: str = "numeric"
    is_calculated: bool = False
    formula: str | None = None
    category_id: str | None = None
    section_id: str | None = None
    sort_order: int = 0
    unit: str | None = None
    description: str | None = None
    weight: Decimal | None = None
    validation: _RuleDoc | None = None

    @field_validator("data_type")
    @classmethod
    def _known_data_type(cls, value: str) -> str:
        return MetricDataType.parse(value).value


class _EdgeDoc(_DocumentModel):
    dependent: str = Field(min_length=1)
    source: str = Field(min_length=1)


class _VariationDoc(_DocumentModel):
    industry_id: str = Field(min_length=1)
    metric: str = Field(min_length=1)
    is_required: bool | None = None
    weight: Decimal | None = None
    override_formula: str | None = None
    override_validation: _RuleDoc | None = None


class _CatalogDoc(_DocumentModel):
    framework_id: str = Field(min_length=1)
    name: str | None = None
    version: str | None = None
    metrics: list[_MetricDoc] = Field(default_factory=list)
    dependencies: list[_EdgeDoc] = Field(default_factory=list)
    industry_variations: list[_VariationDoc] = Field(default_factory=list)


class ValuesDocument(_DocumentModel):
    """Raw values for one (entity, period), keyed by metric code."""

    entity_id: str = "default"
    period: str = "current"
    values: dict[str, bool | int | float | str | None] = Field(default_factory=dict)


def _decode(data: str | bytes | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(data, Mapping):
        return data
    try:
        decoded = json.loads(data)
    except json.JSONDecodeError as exc:
        raise CatalogDocumentError(
            "Document is not valid JSON.",
            details={"line": exc.lineno, "column": exc.colno, "error": exc.msg},
        ) from exc
    if not isinstance(decoded, dict):
        raise CatalogDocumentError("Document must be a JSON object.")
    return decoded


def _validation_error(what: str, exc: ValidationError) -> CatalogDocumentError:
    errors = [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]
    return CatalogDocumentError(f"Invalid {what} document.", details={"errors": errors})


def parse_catalog_document(data: str | bytes | Mapping[str, Any]) -> CatalogSnapshot:
    """Parse a catalog document into a CatalogSnapshot.

    Args:
        data: JSON text or an already decoded mapping.

    Returns:
        The catalog snapshot.

    Raises:
        CatalogDocumentError: If the document is malformed.
    """
    try:
        doc = _CatalogDoc.model_validate(_decode(data))
    except ValidationError as exc:
        raise _validation_error("catalog", exc) from exc

    ids_by_code: dict[str, str] = {}
    metrics: list[Metric] = []
    rules: dict[str, ValidationRule] = {}
    weights: dict[str, Decimal] = {}
    for item in doc.metrics:
        metric_id = item.id or item.code
        ids_by_code.setdefault(item.code, metric_id)
        try:
            metrics.append(
                Metric(
                    metric_id=metric_id,
                    code=item.code,
                    name=item.name,
                    data_type=MetricDataType(item.data_type),
                    is_calculated=item.is_calculated,
                    formula=item.formula,
                    framework_id=doc.framework_id,
                    category_id=item.category_id,
                    section_id=item.section_id,
                    sort_order=item.sort_order,
                    unit=item.unit,
                    description=item.description,
                )
            )
        except ValueError as exc:
            raise CatalogDocumentError(str(exc), details={"code": item.code}) from exc
        if item.validation is not None:
            rule = item.validation
            rules[metric_id] = ValidationRule(
                min_value=rule.min_value,
                max_value=rule.max_value,
                is_required=True if rule.is_required is None else rule.is_required,
                pattern=rule.pattern,
                error_message=rule.error_message,
            )
        if item.weight is not None:
            weights[metric_id] = item.weight

    edges = tuple(
        DependencyEdge(
            dependent_metric_id=ids_by_code.get(e.dependent, e.dependent),
            source_metric_id=ids_by_code.get(e.source, e.source),
        )
        for e in doc.dependencies
    )

    variations = tuple(
        IndustryVariation(
            industry_id=v.industry_id,
            metric_id=ids_by_code.get(v.metric, v.metric),
            is_required=v.is_required,
            weight=v.weight,
            override_formula=v.override_formula,
            override_validation=(
                ValidationRuleOverride(**v.override_validation.model_dump())
                if v.override_validation is not None
                else None
            ),
        )
        for v in doc.industry_variations
    )

    return CatalogSnapshot(
        framework_id=doc.framework_id,
        metrics=tuple(metrics),
        edges=edges,
        validation_rules=rules,
        industry_variations=variations,
        base_weights=weights,
    )


def parse_values_document(data: str | bytes | Mapping[str, Any]) -> ValuesDocument:
    """Parse a raw values document.

    Raises:
        CatalogDocumentError: If the document is malformed.
    """
    try:
        return ValuesDocument.model_validate(_decode(data))
    except ValidationError as exc:
        raise _validation_error("values", exc) from exc


def values_by_metric_id(snapshot: CatalogSnapshot, values: Mapping[str, RawValue | None]) -> dict[str, RawValue]:
    """Re-key code-keyed values by metric id, dropping unknown codes and Nones."""
    by_code = snapshot.metrics_by_code
    return {
        by_code[code].metric_id: value
        for code, value in values.items()
        if code in by_code and value is not None
    }


def load_catalog_file(path: Path) -> CatalogSnapshot:
    """Read and parse a catalog document from disk."""
    return parse_catalog_document(path.read_text(encoding="utf-8"))


def load_values_file(path: Path) -> ValuesDocument:
    """Read and parse a values document from disk."""
    return parse_values_document(path.read_text(encoding="utf-8"))
