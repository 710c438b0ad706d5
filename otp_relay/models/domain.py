"""Domain models for OTP retrieval.

Data classes and enums shared by the extraction, filtering, failover and
TOTP components.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class OutcomeStatus(Enum):
    """Terminal and per-account attempt states."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    PRODUCT_NOT_FOUND = "product_not_found"
    NO_ACCESS = "no_access"
    ACCESS_EXPIRED = "access_expired"
    NO_ACCOUNTS = "no_accounts"
    OTP_NOT_FOUND = "otp_not_found"
    TOTP_NOT_CONFIGURED = "totp_not_configured"
    ERROR = "error"


@dataclass
class Product:
    """Service a code is requested for."""

    id: str
    slug: str
    title: str
    active: bool = True


@dataclass
class Account:
    """
    One mailbox usable for OTP retrieval.

    Attributes:
        id: Account identifier
        label: Human readable name
        host: IMAP server hostname
        port: IMAP server port (993 for TLS)
        username: IMAP login
        credential_ref: Encrypted IMAP password
        default_pattern: Extraction regex used when the mapping has none
        default_sender_filter: Comma-separated sender allow-list
        priority: Informational priority number
        active: Whether the account may be used
        last_used_at: Last time a code was read from this mailbox
    """

    id: str
    label: str
    host: str
    username: str
    credential_ref: str
    port: int = 993
    default_pattern: Optional[str] = None
    default_sender_filter: Optional[str] = None
    priority: int = 100
    active: bool = True
    last_used_at: Optional[datetime] = None


@dataclass
class ProductAccountMapping:
    """Association between a product and an account with a trial weight."""

    product_id: str
    account_id: str
    weight: int = 100
    sender_override: Optional[str] = None
    pattern_override: Optional[str] = None
    active: bool = True


@dataclass
class AccountTarget:
    """An account joined with the mapping that brought it into a request."""

    account: Account
    mapping: ProductAccountMapping

    @property
    def weight(self) -> int:
        return self.mapping.weight

    @property
    def sender_filter(self) -> Optional[str]:
        """Mapping override wins over the account default."""
        return self.mapping.sender_override or self.account.default_sender_filter

    @property
    def pattern(self) -> Optional[str]:
        """Mapping override wins over the account default."""
        return self.mapping.pattern_override or self.account.default_pattern


@dataclass
class AccessGrant:
    """Time-bounded permission for a user on a product."""

    user_id: str
    product_id: str
    granted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or datetime.now(timezone.utc))


@dataclass
class TotpConfig:
    """
    TOTP parameters for a product.

    Attributes:
        secret_ref: Encrypted Base32 secret
        digits: Code length (None means settings default)
        period_seconds: Time step (None means settings default)
        algorithm: SHA1, SHA256 or SHA512 (None means settings default)
        issuer: Issuer shown to the user
        account_label: Account name shown to the user
    """

    secret_ref: str
    digits: Optional[int] = None
    period_seconds: Optional[int] = None
    algorithm: Optional[str] = None
    issuer: Optional[str] = None
    account_label: Optional[str] = None


@dataclass
class MailMessage:
    """A fetched message reduced to the parts extraction needs."""

    uid: str
    subject: str = ""
    text_body: str = ""
    html_body: str = ""
    from_address: str = ""
    received_at: Optional[datetime] = None


@dataclass(frozen=True)
class Candidate:
    """A substring a pattern proposed as the OTP."""

    text: str
    pattern_id: str
    source_position: int


@dataclass
class FilterConfig:
    """Sender and time filters resolved for one account."""

    sender_allowlist: List[str] = field(default_factory=list)
    sender_denylist: List[str] = field(default_factory=list)
    time_window_hours: int = 24


@dataclass
class OTPResult:
    """An accepted code with its provenance."""

    otp: str
    from_address: str
    subject: str
    account_id: str
    account_label: str
    pattern_id: str
    relevance: str
    received_at: Optional[datetime] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TOTPResult:
    """A generated TOTP code."""

    code: str
    valid_for_seconds: int
    issuer: Optional[str] = None
    account_label: Optional[str] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class AttemptOutcome:
    """Structured record of one attempt, forwarded to the outcome logger."""

    user_id: str
    product_id: str
    status: OutcomeStatus
    account_id: Optional[str] = None
    detail: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "product_id": self.product_id,
            "account_id": self.account_id,
            "status": self.status.value,
            "detail": self.detail,
            "created_at": self.created_at.isoformat(),
        }
