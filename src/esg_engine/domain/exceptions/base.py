# src/esg_engine/domain/exceptions/base.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Root of the engine error hierarchy.

Summary:
    Every engine error carries a stable ``code`` and a ``details`` dict; the
    CLI turns them into exit codes and the use cases into outcome labels.

Layer:
    domain/exceptions
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for engine errors.

    Attributes:
        code:
            Stable error code suitable for logs, metrics and JSON payloads.
        message:
            Human-readable error message.
        details:
            Diagnostic payload, e.g. every code on a detected cycle.
    """

    code: str = "DOMAIN_ERROR"

    def __init__(self, message: str = "", *, details: dict[str, Any] | None = None) -> None:
        """Initialize a DomainError instance.

        Args:
            message:
                Human-readable error message, safe to surface to catalog
                maintainers.
            details:
                Optional structured diagnostic payload for logs or adapters.
        """
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def __str__(self) -> str:
        """Return the human-readable message for this error."""
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation of the error."""
        return {"code": self.code, "message": self.message, "details": dict(self.details)}
