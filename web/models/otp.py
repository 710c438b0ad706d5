"""OTP and TOTP response models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from otp_relay.models import OTPResult, TOTPResult


class OTPResponse(BaseModel):
    """Email OTP response model."""

    model_config = ConfigDict(populate_by_name=True)

    otp: str
    from_address: str = Field(alias="from")
    subject: str
    fetched_at: datetime
    account_label: str
    relevance: str
    pattern: str

    @classmethod
    def from_result(cls, result: OTPResult) -> "OTPResponse":
        return cls(
            otp=result.otp,
            from_address=result.from_address,
            subject=result.subject,
            fetched_at=result.fetched_at,
            account_label=result.account_label,
            relevance=result.relevance,
            pattern=result.pattern_id,
        )


class TOTPResponse(BaseModel):
    """TOTP response model."""

    code: str
    valid_for_seconds: int
    issuer: Optional[str] = None
    account_label: Optional[str] = None
    fetched_at: datetime

    @classmethod
    def from_result(cls, result: TOTPResult) -> "TOTPResponse":
        return cls(
            code=result.code,
            valid_for_seconds=result.valid_for_seconds,
            issuer=result.issuer,
            account_label=result.account_label,
            fetched_at=result.fetched_at,
        )


class ProblemResponse(BaseModel):
    """RFC 7807 error body with a stable error code."""

    type: str
    title: str
    status: int
    error: str
    detail: str
    instance: str
