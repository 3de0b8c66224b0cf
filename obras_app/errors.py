"""
obras_app/errors.py

Typed error taxonomy shared by the gateway, services and blueprints.

Every error carries:
- code: machine-readable tag (stable, API-safe)
- http_status: status the JSON API answers with

Propagation policy:
- Nothing here is retried automatically.
- Every failure is scoped to the request that produced it; the blueprint
  error handler rolls back the session and answers {"error", "code"}.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ObrasError(Exception):
    """Base class for all application errors."""

    code = "ERRO"
    http_status = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ObrasError):
    """Bad input shape (e.g. non-6-digit code, unknown action tag)."""

    code = "VALIDATION_ERROR"
    http_status = 400


class ConflictError(ValidationError):
    """Uniqueness violation, e.g. duplicate session sequence for an obra."""

    code = "CONFLICT"
    http_status = 409


class NotFoundError(ObrasError):
    """Referenced row is absent."""

    code = "NOT_FOUND"
    http_status = 404


class WriteError(ObrasError):
    """Remote write failed for reasons opaque to the caller."""

    code = "WRITE_ERROR"
    http_status = 500


class PermissionDenied(ObrasError):
    """Caller's role lacks the capability the operation requires."""

    code = "FORBIDDEN"
    http_status = 403
