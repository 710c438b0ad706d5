"""Request correlation ID middleware for tracking requests across logs."""

import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from otp_relay.core.logger import correlation_id_ctx

_HEADER = "X-Request-ID"
_MAX_ID_LENGTH = 128


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation ID to all requests and responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request and add correlation ID.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            HTTP response with correlation ID header
        """
        request_id = request.headers.get(_HEADER, "")[:_MAX_ID_LENGTH] or str(uuid.uuid4())

        # Read by the log patcher
        token = correlation_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(token)

        response.headers[_HEADER] = request_id
        return response


def get_correlation_id() -> str:
    """
    Get the current request's correlation ID.

    Returns:
        Correlation ID string, or empty string if not set
    """
    return correlation_id_ctx.get() or ""
