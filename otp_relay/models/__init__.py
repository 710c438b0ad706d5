"""Domain models shared by retrieval, TOTP and repositories."""

from .domain import (
    AccessGrant,
    Account,
    AccountTarget,
    AttemptOutcome,
    Candidate,
    FilterConfig,
    MailMessage,
    OTPResult,
    OutcomeStatus,
    Product,
    ProductAccountMapping,
    TOTPResult,
    TotpConfig,
)

__all__ = [
    "OutcomeStatus",
    "Product",
    "Account",
    "ProductAccountMapping",
    "AccountTarget",
    "AccessGrant",
    "TotpConfig",
    "MailMessage",
    "Candidate",
    "FilterConfig",
    "OTPResult",
    "TOTPResult",
    "AttemptOutcome",
]
