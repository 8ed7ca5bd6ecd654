"""FastAPI exception handlers for converting DonationError to HTTP responses.

The ErrorCode-to-HTTP status mapping follows REST conventions:
- 400 Bad Request: invalid amount, invalid body, bad webhook signature
- 401 Unauthorized: no authenticated donor
- 404 Not Found: unknown target or payment session
- 500 Internal Server Error: Stripe or local persistence failures, and
  webhook failures (Stripe redelivers on any non-2xx response)

Usage:
    from donorconnect_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from donorconnect.models.errors import DonationError, ErrorCode
from donorconnect_api.models.common import format_validation_errors

logger = logging.getLogger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Request validation errors -> 400 Bad Request
    ErrorCode.INVALID_AMOUNT: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_REQUEST: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: HTTP_400_BAD_REQUEST,
    # Authentication errors -> 401 Unauthorized
    ErrorCode.AUTH_REQUIRED: HTTP_401_UNAUTHORIZED,
    # Not found errors -> 404 Not Found
    ErrorCode.TARGET_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.PAYMENT_SESSION_NOT_FOUND: HTTP_404_NOT_FOUND,
    # Processor and persistence failures -> 500
    ErrorCode.STRIPE_API_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.LOCAL_PERSISTENCE_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.WEBHOOK_PROCESSING_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode.

    Args:
        code: The ErrorCode to map

    Returns:
        HTTP status code, defaults to 400 if not explicitly mapped.
    """
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def donation_error_handler(request: Request, exc: DonationError) -> JSONResponse:
    """Convert a DonationError to a JSON ErrorResponse with the mapped status."""
    status_code = get_http_status_for_error(exc.code)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.code.value, exc.details)

    return JSONResponse(
        status_code=status_code,
        content=exc.to_error_response().model_dump(mode="json"),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return request body validation failures as 400 with field details."""
    return JSONResponse(
        status_code=HTTP_400_BAD_REQUEST,
        content=format_validation_errors(list(exc.errors())).model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(DonationError, donation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
