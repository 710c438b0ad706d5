"""Health check routes for OTP Relay web application."""

from fastapi import APIRouter

from otp_relay.core.rate_limiting import get_otp_rate_limiter
from web.models import HealthResponse

router = APIRouter(tags=["health"])


def get_version() -> str:
    """
    Get application version from centralized source.

    Returns:
        Version string
    """
    from otp_relay import __version__

    return __version__


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Liveness probe.

    Returns:
        Service status, version and the active rate limiter backend
    """
    limiter = get_otp_rate_limiter()
    return HealthResponse(
        status="ok",
        version=get_version(),
        rate_limiter="redis" if limiter.is_distributed else "memory",
    )
