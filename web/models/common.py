"""Common shared models for OTP Relay web application."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    rate_limiter: str
