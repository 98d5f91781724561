"""Error types raised by the services and the middleware that renders them."""

import logging
import traceback
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

ErrorDetails = list[dict[str, Any]]


class APIError(Exception):
    """Base class for errors returned to the client as an ``ErrorResponse``.

    Subclasses set ``status_code`` and ``error_type``; ``headers`` are
    copied onto the response.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, details: ErrorDetails | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        self.headers: dict[str, str] = {}
        super().__init__(self.message)


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Resource not found"


class ValidationError(APIError):
    """Rejected input. Raised before any persistence write is attempted."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_type = "validation_error"
    default_message = "Validation error"


class ConflictError(APIError):
    """The record changed underneath the operation; the caller may retry."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "conflict"
    default_message = "Record was modified concurrently"


class InvalidTransitionError(ConflictError):
    """Order status change not allowed by the order lifecycle."""

    error_type = "invalid_transition"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move order from {current} to {target}",
            details=[{"loc": ["status"], "msg": f"{current} -> {target}", "type": "invalid_transition"}],
        )
        self.current = current
        self.target = target


class ServiceUnavailableError(APIError):
    """The database could not be reached. Retry the whole operation."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_type = "network_unavailable"
    default_message = "Network connection unavailable. Please check your connection and try again."
    retry_after_seconds = 5

    def __init__(self, message: str | None = None, details: ErrorDetails | None = None) -> None:
        super().__init__(message, details)
        self.headers["Retry-After"] = str(self.retry_after_seconds)


class StoreError(APIError):
    """The database rejected a request for a reason other than connectivity."""

    error_type = "database_error"
    default_message = "Database request failed"


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: ErrorDetails | None = None,
    request_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render an ``ErrorResponse`` body with the given status code."""
    error_response = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Turn exceptions escaping a route into ``ErrorResponse`` JSON.

    Client errors are logged at warning, database failures at error.
    Unexpected exceptions get a generic 500 body and a full traceback in
    the log.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        log = logger.error if e.status_code >= 500 else logger.warning
        log(
            "%s %s failed: %s - %s",
            request.method,
            request.url.path,
            e.error_type,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return create_error_response(
            error_type=e.error_type,
            message=e.message,
            status_code=e.status_code,
            details=e.details,
            request_id=request_id,
            headers=e.headers or None,
        )

    except HTTPException as e:
        logger.warning("HTTP exception: %s - %s", e.status_code, e.detail, extra={"request_id": request_id})
        return create_error_response(
            error_type="http_error",
            message=str(e.detail),
            status_code=e.status_code,
            request_id=request_id,
        )

    except Exception as e:
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            e,
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
