"""
Domain exceptions raised by services and mapped to the API error envelope.

Each error carries an HTTP status code and a machine-readable code. The
exception handlers in src.api.main turn them into ErrorResponse bodies.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for expected, operational errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthorizationError(AppError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Optional[Any] = None) -> None:
        if identifier is not None:
            message = f"{resource} with identifier '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)
        self.resource = resource


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class InventoryError(AppError):
    """Inventory rule violation such as a negative resulting balance."""

    status_code = 400
    code = "INVENTORY_ERROR"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str = "Too many requests", retry_after: Optional[int] = None) -> None:
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after
