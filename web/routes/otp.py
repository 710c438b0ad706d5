"""Email OTP and TOTP retrieval routes."""

import asyncio
import contextvars
from functools import partial
from typing import Any, Callable, TypeVar

from fastapi import APIRouter, Depends, Path
from loguru import logger

from otp_relay.services.otp_retrieval import OTPRetrievalService
from web.dependencies import get_retrieval_service, require_user
from web.models import OTPResponse, ProblemResponse, TOTPResponse

router = APIRouter(tags=["otp"])

T = TypeVar("T")

_SLUG = Path(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

_ERROR_RESPONSES: dict = {
    401: {"model": ProblemResponse, "description": "Missing or invalid bearer token"},
    403: {"model": ProblemResponse, "description": "no_access / access_expired"},
    429: {"model": ProblemResponse, "description": "rate_limited"},
    500: {"model": ProblemResponse, "description": "internal_error"},
}


async def _run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run blocking engine work in the default executor, keeping the log context."""
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    return await loop.run_in_executor(None, partial(ctx.run, func, *args))


@router.post(
    "/otp/{product_slug}",
    response_model=OTPResponse,
    responses={
        **_ERROR_RESPONSES,
        404: {
            "model": ProblemResponse,
            "description": "product_not_found / no_accounts / otp_not_found",
        },
    },
)
async def get_email_otp(
    product_slug: str = _SLUG,
    user_id: str = Depends(require_user),
    service: OTPRetrievalService = Depends(get_retrieval_service),
) -> OTPResponse:
    """
    Fetch the latest one-time code sent to the product's mailboxes.

    Args:
        product_slug: Product slug
        user_id: Authenticated user
        service: Retrieval service

    Returns:
        OTP with sender, subject and fetch time
    """
    logger.info(f"Email OTP requested for product {product_slug} by user {user_id}")
    result = await _run_blocking(service.get_email_otp, user_id, product_slug)
    return OTPResponse.from_result(result)


@router.post(
    "/totp/{product_slug}",
    response_model=TOTPResponse,
    responses={
        **_ERROR_RESPONSES,
        404: {"model": ProblemResponse, "description": "product_not_found / totp_not_configured"},
    },
)
async def get_totp(
    product_slug: str = _SLUG,
    user_id: str = Depends(require_user),
    service: OTPRetrievalService = Depends(get_retrieval_service),
) -> TOTPResponse:
    """Generate the current TOTP code for a product."""
    logger.info(f"TOTP requested for product {product_slug} by user {user_id}")
    result = await _run_blocking(service.get_totp, user_id, product_slug)
    return TOTPResponse.from_result(result)
