"""Routes package for OTP Relay web application."""

from .health import router as health_router
from .otp import router as otp_router

__all__ = ["health_router", "otp_router"]
