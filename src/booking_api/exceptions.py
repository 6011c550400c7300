"""FastAPI exception handlers for converting BookingError to HTTP responses.

Status codes follow the error category, not the individual code:
- 400 Bad Request: validation
- 404 Not Found: not_found
- 409 Conflict: contention (slot taken, event full) and consistency
- 502/503: gateway (503 when the caller may retry as is)
- 503 Service Unavailable: system

Messages are localized from the request's Accept-Language header.

Usage:
    from booking_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from booking_core.models import BookingError, ErrorCategory, ErrorCode, ErrorResponse
from booking_core.utils.logging import get_logger

logger = get_logger(__name__)

CATEGORY_TO_HTTP_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: HTTP_400_BAD_REQUEST,
    ErrorCategory.NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCategory.CONTENTION: HTTP_409_CONFLICT,
    ErrorCategory.CONSISTENCY: HTTP_409_CONFLICT,
    ErrorCategory.GATEWAY: HTTP_502_BAD_GATEWAY,
    ErrorCategory.SYSTEM: HTTP_503_SERVICE_UNAVAILABLE,
}


def get_http_status_for_error(exc: BookingError) -> int:
    """Get HTTP status code for a BookingError.

    Args:
        exc: The domain error

    Returns:
        HTTP status code for the error's category
    """
    if exc.category == ErrorCategory.GATEWAY and exc.retryable:
        return HTTP_503_SERVICE_UNAVAILABLE
    return CATEGORY_TO_HTTP_STATUS[exc.category]


def request_locale(request: Request) -> str | None:
    """First language tag of the Accept-Language header, if any."""
    header = request.headers.get("accept-language")
    if not header:
        return None
    return header.split(",")[0].split(";")[0].strip() or None


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Handle BookingError exceptions and convert to JSON response."""
    if exc.category == ErrorCategory.CONTENTION:
        logger.info("Request lost contention: %s %s", exc.code.value, exc.details)
    elif exc.category in (ErrorCategory.GATEWAY, ErrorCategory.SYSTEM):
        logger.error("Request failed: %s %s", exc.code.value, exc.details)

    return JSONResponse(
        status_code=get_http_status_for_error(exc),
        content=exc.to_error_response(request_locale(request)).model_dump(mode="json"),
    )


async def store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle DynamoDB failures that survived botocore's own retries."""
    logger.exception("Persistence failure: %s", exc)
    body = ErrorResponse.from_code(ErrorCode.STORE_UNAVAILABLE, locale=request_locale(request))
    return JSONResponse(
        status_code=HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(BookingError, booking_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ClientError, store_error_handler)
    app.add_exception_handler(BotoCoreError, store_error_handler)
