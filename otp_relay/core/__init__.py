"""Core infrastructure: configuration, logging, errors and rate limiting."""

from .environment import Environment
from .exceptions import (
    AccessDeniedError,
    AccessExpiredError,
    ConfigurationError,
    DecryptionError,
    MailboxConnectionError,
    MailboxError,
    MailboxFetchError,
    NoAccountsConfiguredError,
    OTPNotFoundError,
    OTPRelayError,
    ProductNotFoundError,
    RateLimitError,
    TOTPGenerationError,
    TOTPNotConfiguredError,
)

__all__ = [
    "Environment",
    "OTPRelayError",
    "RateLimitError",
    "ProductNotFoundError",
    "AccessDeniedError",
    "AccessExpiredError",
    "NoAccountsConfiguredError",
    "OTPNotFoundError",
    "MailboxError",
    "MailboxConnectionError",
    "MailboxFetchError",
    "DecryptionError",
    "TOTPNotConfiguredError",
    "TOTPGenerationError",
    "ConfigurationError",
]
