"""Pydantic models for OTP Relay web application."""

from .common import HealthResponse
from .otp import OTPResponse, ProblemResponse, TOTPResponse

__all__ = [
    "HealthResponse",
    "OTPResponse",
    "ProblemResponse",
    "TOTPResponse",
]
