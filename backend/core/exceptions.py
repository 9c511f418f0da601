"""
Custom exceptions and handlers for consistent API error responses.

Every error raised by the review subsystem carries a stable ``error_code``.
The handlers registered here turn each of them (and anything unexpected)
into the standard response envelope, so nothing escapes the service
boundary uncaught.
"""

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import logging

from .response_models import StandardResponse, ErrorDetail

logger = logging.getLogger(__name__)


class APIError(HTTPException):
    """Base API error with consistent structure"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

    def __str__(self) -> str:
        return str(self.detail)


class NotFoundError(APIError):
    """Resource not found error"""

    def __init__(
        self, detail: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND, detail=detail, error_code=error_code
        )


class ValidationError(APIError):
    """Validation error"""

    def __init__(
        self,
        detail: str = "Validation failed",
        error_code: str = "VALIDATION_ERROR",
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_code=error_code,
        )


class InvalidStateError(ValidationError):
    """Requested transition does not change the current state"""

    def __init__(
        self, detail: str = "Already in requested state", error_code: str = "INVALID_STATE"
    ):
        super().__init__(
            detail=detail,
            error_code=error_code,
            status_code=status.HTTP_409_CONFLICT,
        )


class NormalizationError(APIError):
    """An upstream record could not be turned into a canonical review"""

    def __init__(
        self,
        reason: str,
        external_id: Optional[str] = None,
        error_code: str = "NORMALIZATION_ERROR",
    ):
        detail = reason if external_id is None else f"Review {external_id}: {reason}"
        super().__init__(
            status_code=422,
            detail=detail,
            error_code=error_code,
        )
        self.reason = reason
        self.external_id = external_id


class UpstreamUnavailableError(APIError):
    """Neither the upstream API nor the fallback dataset produced data"""

    def __init__(
        self,
        detail: str = "Review data source unavailable",
        error_code: str = "UPSTREAM_UNAVAILABLE",
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code=error_code,
        )


class CacheError(APIError):
    """Cache storage malfunction; callers bypass the cache on this error"""

    def __init__(self, detail: str = "Cache unavailable", error_code: str = "CACHE_ERROR"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code,
        )


class InternalError(APIError):
    """Catch-all server error"""

    def __init__(
        self, detail: str = "Internal server error", error_code: str = "INTERNAL_ERROR"
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code,
        )


def _error_response(
    request: Request, status_code: int, code: str, message: str, headers=None
) -> JSONResponse:
    body = StandardResponse.error(
        message=message, code=code, meta={"request_id": request.headers.get("x-request-id")}
    )
    content = body.model_dump(mode="json")
    content["path"] = str(request.url.path)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} at {request.url.path}: {exc.detail}")
    return _error_response(
        request, exc.status_code, exc.error_code or "ERROR", str(exc.detail), exc.headers
    )


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI/pydantic request validation failures"""
    logger.warning(f"Request validation failed at {request.url.path}: {exc.errors()}")
    errors = [
        ErrorDetail(
            code="VALIDATION_ERROR",
            message=err.get("msg", "Invalid value"),
            field=".".join(str(part) for part in err.get("loc", ())),
        )
        for err in exc.errors()
    ]
    body = StandardResponse.error(
        message="Request validation failed", code="VALIDATION_ERROR", errors=errors
    )
    content = body.model_dump(mode="json")
    content["path"] = str(request.url.path)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    """Convert ValueError to consistent API response"""
    logger.warning(f"ValueError at {request.url.path}: {str(exc)}")
    return _error_response(
        request, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", str(exc)
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler so no exception leaves the service unformatted"""
    logger.exception(f"Unhandled error at {request.url.path}: {exc}")
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "Internal server error",
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
