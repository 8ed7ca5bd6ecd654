"""Correlation ID middleware for request tracing.

The ID comes from the X-Correlation-ID header when the caller sends one,
otherwise from the Lambda request ID (under Mangum), otherwise a new UUID.
It stays set for the whole request, including checkout and webhook work
running in the threadpool, and is echoed on the response.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from donorconnect.utils.logging import clear_correlation_id, set_correlation_id

CORRELATION_ID_HEADER = "X-Correlation-ID"


def _lambda_request_id(request: Request) -> str | None:
    context = request.scope.get("aws.context")
    return getattr(context, "aws_request_id", None)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = set_correlation_id(
            request.headers.get(CORRELATION_ID_HEADER) or _lambda_request_id(request)
        )
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
