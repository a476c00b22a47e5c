"""
Error taxonomy. Risk-gate rejections are outcomes, not errors, and never raise.
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base error with a stable machine-readable code."""

    code = "APP_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(AppError):
    """Bad strategy, factor or risk configuration. Raised before any broker call."""

    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    """Referenced portfolio, position, strategy or order does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found" if identifier is None else f"{resource} '{identifier}' not found"
        super().__init__(message, details={"resource": resource, "id": identifier})
        self.resource = resource
        self.identifier = identifier


class ConflictError(AppError):
    """Duplicate in-flight trade. Callers treat it as a no-op."""

    code = "CONFLICT"


class ExternalServiceError(AppError):
    """Broker or other remote call failed (non-2xx, timeout, connection error)."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None,
        transient: Optional[bool] = None,
    ):
        super().__init__(f"{service}: {message}", details={"service": service, "status_code": status_code})
        self.service = service
        self.status_code = status_code
        self._transient = transient

    @property
    def is_transient(self) -> bool:
        """True for timeouts, connection errors, 429 and 5xx: the order may still be retried later."""
        if self._transient is not None:
            return self._transient
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500
