"""Error types raised by the service layer and their HTTP handlers."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class UserRegistryError(Exception):
    """Base class for errors that map to a client-facing response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(UserRegistryError):
    """Bad input, a missing field or a conflicting unique value."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(UserRegistryError):
    """The requested user does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message)


class ImportConflictError(ValidationError):
    """An import was rejected; ``details`` holds the duplicate report."""

    def __init__(self, report: dict[str, Any]) -> None:
        super().__init__("Cannot import users due to duplicates", report)


class ConstraintViolation(Exception):
    """Raised by the storage layer when a unique index rejects a write.

    ``field`` names the column whose value collided (``email`` or
    ``mobile``).
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(message)


# ── Exception handlers ───────────────────────────────────

async def registry_error_handler(request: Request, exc: UserRegistryError) -> JSONResponse:
    """Render a service error as ``{"message": ..., **details}``."""
    logger.info(
        "%s %s rejected (%s): %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, **exc.details},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies are client errors, reported as 400."""
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append(f"{field}: {error['msg']}")

    logger.info("Validation failed on %s %s: %s", request.method, request.url.path, errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Validation failed", "errors": errors},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else is a 500 carrying the underlying error text."""
    logger.error(
        "Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": str(exc)},
    )
