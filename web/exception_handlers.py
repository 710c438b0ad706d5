"""RFC 7807 Problem Details exception handlers for FastAPI."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException

from otp_relay.core.exceptions import OTPRelayError, RateLimitError

PROBLEM_JSON = "application/problem+json"

_ERROR_TYPES = {
    400: "urn:otprelay:error:bad-request",
    401: "urn:otprelay:error:unauthorized",
    403: "urn:otprelay:error:forbidden",
    404: "urn:otprelay:error:not-found",
    422: "urn:otprelay:error:validation",
    429: "urn:otprelay:error:rate-limit",
    500: "urn:otprelay:error:internal-server",
}

_ERROR_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    422: "Validation Error",
    429: "Too Many Requests",
    500: "Internal Server Error",
}

# Stable machine-readable codes for plain HTTP errors
_ERROR_CODES = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    422: "validation_error",
    500: "internal_error",
}


def _problem(
    request: Request, status_code: int, error: str, detail: str, headers=None, **extra
) -> JSONResponse:
    content = {
        "type": _ERROR_TYPES.get(status_code, f"urn:otprelay:error:http-{status_code}"),
        "title": _ERROR_TITLES.get(status_code, "Error"),
        "status": status_code,
        "error": error,
        "detail": detail,
        "instance": request.url.path,
    }
    content.update(extra)
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers or {},
        media_type=PROBLEM_JSON,
    )


async def otp_relay_exception_handler(request: Request, exc: OTPRelayError) -> JSONResponse:
    """Render a domain error with its stable error code and status."""
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)

    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
        # Internal details stay in the logs
        detail = "An internal error occurred"
    else:
        detail = exc.message

    return _problem(request, exc.status_code, exc.error_code, detail, headers=headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert FastAPI HTTPException to RFC 7807 Problem Details format."""
    status_code = exc.status_code
    return _problem(
        request,
        status_code,
        _ERROR_CODES.get(status_code, f"http_{status_code}"),
        exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert Pydantic validation errors to RFC 7807 format."""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors[field] = error["msg"]

    return _problem(
        request, 422, "validation_error", "Request validation failed", errors=errors
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map any unexpected exception to a generic 500."""
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return _problem(request, 500, "internal_error", "An internal error occurred")
