"""
Custom exceptions and error handlers for consistent error responses.

Every error leaves the API as ``{"ok": false, "error", "error_code", "details"}``.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm.exc import StaleDataError
from typing import Any, Dict

logger = logging.getLogger("dispatch.errors")


class AppException(Exception):
    """Base application exception."""
    
    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ScopeResolutionError(AppException):
    """Raised when the caller's company cannot be determined."""
    
    def __init__(self, message: str = "Unable to resolve company for this user"):
        super().__init__(
            message=message,
            error_code="ERR_SCOPE_001",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class NotFoundError(AppException):
    """Raised when a resource is not found within the caller's scope."""
    
    def __init__(self, resource: str, resource_id: Any = None, message: str = None):
        if message is None:
            message = f"{resource} not found"
            if resource_id is not None:
                message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ScopeViolationError(AppException):
    """Raised when a resource exists but lies outside the caller's shop/company."""
    
    def __init__(self, message: str = "Resource is outside your scope", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_SCOPE_002",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class InvalidStateError(AppException):
    """Raised when an operation is not permitted in the current status."""
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class DriverUnavailableError(AppException):
    """Raised when the target driver is inactive or already engaged."""
    
    def __init__(self, message: str = "Driver is not available", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_DRIVER_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ForbiddenError(AppException):
    """Raised when a role or ownership check fails."""
    
    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class InvalidSignatureError(AppException):
    """Raised when a delivery QR signature does not verify."""
    
    def __init__(self, message: str = "Invalid QR signature"):
        super().__init__(
            message=message,
            error_code="ERR_QR_001",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class ConcurrencyConflictError(AppException):
    """Raised when a concurrent request modified the same records first."""
    
    def __init__(self, message: str = "The resource was modified by another request, please retry"):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""
    
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


def error_body(message: str, error_code: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    return {
        "ok": False,
        "error": message,
        "error_code": error_code,
        "details": details or {}
    }


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, exc.details),
        headers=headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }
    
    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")
    
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), error_code),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(
            "Validation error",
            "ERR_VALIDATION",
            {"errors": jsonable_encoder(exc.errors())}
        )
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception on %s %s: %s",
        request.method, request.url.path, type(exc).__name__
    )
    
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("An internal server error occurred", "ERR_INTERNAL_SERVER")
    )


async def stale_data_exception_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    """Handler for version-counter conflicts not mapped by a service."""
    logger.warning("Concurrent modification on %s %s: %s", request.method, request.url.path, exc)
    conflict = ConcurrencyConflictError()
    return JSONResponse(
        status_code=conflict.status_code,
        content=error_body(conflict.message, conflict.error_code)
    )
