# src/esg_engine/domain/exceptions/calculation.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Calculation engine domain exceptions.

Purpose:
    Provide the error taxonomy of the metric calculation engine.

    Structural errors (broken catalog) are fatal to a whole run:
        * UnknownMetricReference
        * CycleDetected
        * CatalogIntegrityError

    Per-metric errors are scoped to a single calculated metric and are
    captured by the orchestrator as MetricOutcome records:
        * MissingRequiredInput
        * DivisionByZero
        * InvalidFormulaSyntax
        * FormulaTypeError

    Run-level errors raised by the application layer:
        * CalculationCancelled
        * CalculationLockTimeout
        * FrameworkNotFound

Layer:
    domain/exceptions
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from esg_engine.domain.exceptions.base import DomainError

__all__ = [
    "StructuralCatalogError",
    "UnknownMetricReference",
    "CycleDetected",
    "CatalogIntegrityError",
    "FormulaError",
    "MissingRequiredInput",
    "DivisionByZero",
    "InvalidFormulaSyntax",
    "FormulaTypeError",
    "CalculationCancelled",
    "CalculationLockTimeout",
    "FrameworkNotFound",
]


# --------------------------------------------------------------------------- #
# Structural errors                                                           #
# --------------------------------------------------------------------------- #


class StructuralCatalogError(DomainError):
    """Base class for errors indicating a broken catalog snapshot."""

    code = "STRUCTURAL_CATALOG_ERROR"


class UnknownMetricReference(StructuralCatalogError):
    """Raised when an edge or request names a metric id absent from the catalog."""

    code = "UNKNOWN_METRIC_REFERENCE"

    def __init__(self, metric_id: str, *, context: str | None = None) -> None:
        """Initialize the error.

        Args:
            metric_id: The metric identifier that could not be resolved.
            context: Optional short description of where the reference was found.
        """
        message = f"Unknown metric reference: {metric_id!r}"
        if context:
            message = f"{message} ({context})"
        super().__init__(message, details={"metric_id": metric_id, "context": context})
        self.metric_id = metric_id


class CycleDetected(StructuralCatalogError):
    """Raised when the dependency graph contains at least one cycle.

    Attributes:
        codes:
            Every metric code lying on at least one cycle, in deterministic
            (sort_order, code) order.
        cycle:
            One concrete closed path of codes (first code repeated at the end
            is omitted), useful for pointing authors at a specific loop.
    """

    code = "CYCLE_DETECTED"

    def __init__(self, codes: Sequence[str], *, cycle: Sequence[str] = ()) -> None:
        """Initialize the error.

        Args:
            codes: Metric codes participating in cycles.
            cycle: One concrete cycle path.
        """
        self.codes: tuple[str, ...] = tuple(codes)
        self.cycle: tuple[str, ...] = tuple(cycle)
        path = " -> ".join((*self.cycle, self.cycle[0])) if self.cycle else ""
        message = f"Circular metric dependencies detected among: {', '.join(self.codes)}"
        if path:
            message = f"{message} (e.g. {path})"
        super().__init__(message, details={"codes": list(self.codes), "cycle": list(self.cycle)})


class CatalogIntegrityError(StructuralCatalogError):
    """Raised when the catalog snapshot cannot be indexed unambiguously."""

    code = "CATALOG_INTEGRITY_ERROR"


# --------------------------------------------------------------------------- #
# Per-metric formula errors                                                   #
# --------------------------------------------------------------------------- #


class FormulaError(DomainError):
    """Base class for errors scoped to the evaluation of a single metric.

    Attributes:
        metric_code:
            Code of the calculated metric whose formula failed, when known.
            Parsing and evaluation helpers may raise without it; the
            orchestrator re-binds the owning metric before recording.
    """

    code = "FORMULA_ERROR"

    def __init__(
        self,
        message: str,
        *,
        metric_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable description.
            metric_code: Owning calculated metric, if known.
            details: Optional diagnostic payload.
        """
        merged = {"metric_code": metric_code, **(details or {})}
        super().__init__(message, details=merged)
        self.metric_code = metric_code

    def bind(self, metric_code: str) -> FormulaError:
        """Attach the owning metric code if it is not already set.

        Args:
            metric_code: Code of the calculated metric being evaluated.

        Returns:
            The same error instance, for raise/record chaining.
        """
        if self.metric_code is None:
            self.metric_code = metric_code
            self.details["metric_code"] = metric_code
        return self


class MissingRequiredInput(FormulaError):
    """Raised when a required operand has no value for the (entity, period)."""

    code = "MISSING_REQUIRED_INPUT"

    def __init__(self, input_code: str, *, metric_code: str | None = None) -> None:
        """Initialize the error.

        Args:
            input_code: Code of the required metric that has no value.
            metric_code: Owning calculated metric, if known.
        """
        super().__init__(
            f"Required input {input_code!r} has no value",
            metric_code=metric_code,
            details={"input_code": input_code},
        )
        self.input_code = input_code


class DivisionByZero(FormulaError):
    """Raised when a formula divides by zero."""

    code = "DIVISION_BY_ZERO"

    def __init__(self, *, metric_code: str | None = None) -> None:
        """Initialize the error.

        Args:
            metric_code: Owning calculated metric, if known.
        """
        super().__init__("Division by zero", metric_code=metric_code)


class InvalidFormulaSyntax(FormulaError):
    """Raised when formula text does not conform to the formula grammar."""

    code = "INVALID_FORMULA_SYNTAX"

    def __init__(
        self,
        detail: str,
        *,
        metric_code: str | None = None,
        position: int | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            detail: Description of the syntax problem.
            metric_code: Owning calculated metric, if known.
            position: Zero-based character offset of the problem, if known.
        """
        super().__init__(
            f"Invalid formula syntax: {detail}",
            metric_code=metric_code,
            details={"detail": detail, "position": position},
        )
        self.detail = detail
        self.position = position


class FormulaTypeError(FormulaError):
    """Raised when an operand cannot take part in arithmetic or comparison."""

    code = "FORMULA_TYPE_ERROR"

    def __init__(self, detail: str, *, metric_code: str | None = None) -> None:
        """Initialize the error.

        Args:
            detail: Description of the offending operand or result.
            metric_code: Owning calculated metric, if known.
        """
        super().__init__(
            f"Formula type error: {detail}",
            metric_code=metric_code,
            details={"detail": detail},
        )
        self.detail = detail


# --------------------------------------------------------------------------- #
# Run-level errors                                                            #
# --------------------------------------------------------------------------- #


class CalculationCancelled(DomainError):
    """Raised when a calculation run is cancelled; partial results are discarded."""

    code = "CALCULATION_CANCELLED"


class CalculationLockTimeout(DomainError):
    """Raised when the logical (framework, entity, period) lock cannot be acquired."""

    code = "CALCULATION_LOCK_TIMEOUT"


class FrameworkNotFound(DomainError):
    """Raised by catalog providers when a framework id is unknown."""

    code = "FRAMEWORK_NOT_FOUND"
