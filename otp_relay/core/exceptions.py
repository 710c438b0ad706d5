"""Custom exception classes for OTP Relay."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class OTPRelayError(Exception):
    """Base exception for OTP Relay."""

    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(
        self, message: str, recoverable: bool = True, details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize OTP Relay error.

        Args:
            message: Error message
            recoverable: Whether the caller may succeed by retrying later
            details: Additional error details
        """
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.error_code,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class RateLimitError(OTPRelayError):
    """Rate limit exceeded for a (user, product) pair."""

    error_code = "rate_limited"
    status_code = 429

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again in a moment.",
        retry_after: Optional[int] = None,
    ):
        """
        Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Recommended wait time in seconds before retry
        """
        self.retry_after = retry_after
        super().__init__(message, recoverable=True, details={"retry_after": retry_after})


# Product and access errors
class ProductNotFoundError(OTPRelayError):
    """Product does not exist or is inactive."""

    error_code = "product_not_found"
    status_code = 404

    def __init__(self, slug: str):
        super().__init__(
            f"Product '{slug}' not found", recoverable=False, details={"product": slug}
        )


class AccessDeniedError(OTPRelayError):
    """User holds no grant on the product."""

    error_code = "no_access"
    status_code = 403

    def __init__(self, message: str = "You do not have access to this product"):
        super().__init__(message, recoverable=False)


class AccessExpiredError(OTPRelayError):
    """User's grant on the product has expired."""

    error_code = "access_expired"
    status_code = 403

    def __init__(self, message: str = "Your access to this product has expired"):
        super().__init__(message, recoverable=False)


class NoAccountsConfiguredError(OTPRelayError):
    """No active mailbox accounts are mapped to the product."""

    error_code = "no_accounts"
    status_code = 404

    def __init__(self, message: str = "No active accounts configured"):
        super().__init__(message, recoverable=False)


class OTPNotFoundError(OTPRelayError):
    """No qualifying OTP was found across all accounts."""

    error_code = "otp_not_found"
    status_code = 404

    def __init__(self, message: str = "No OTP found in recent emails"):
        super().__init__(message, recoverable=True)


# Account-level errors (recovered by failover)
class MailboxError(OTPRelayError):
    """Base class for mailbox protocol errors."""

    def __init__(
        self,
        message: str = "Mailbox error occurred",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable=True, details=details)


class MailboxConnectionError(MailboxError):
    """Connecting, authenticating or selecting the mailbox failed."""

    def __init__(self, message: str = "Mailbox connection failed", host: Optional[str] = None):
        super().__init__(message, details={"host": host} if host else None)


class MailboxFetchError(MailboxError):
    """Searching or fetching messages failed."""

    def __init__(self, message: str = "Mailbox fetch failed"):
        super().__init__(message)


class DecryptionError(OTPRelayError):
    """A stored credential or secret could not be decrypted."""

    def __init__(self, message: str = "Credential decryption failed"):
        super().__init__(message, recoverable=False)


# TOTP errors
class TOTPNotConfiguredError(OTPRelayError):
    """Product has no TOTP secret configured."""

    error_code = "totp_not_configured"
    status_code = 404

    def __init__(self, message: str = "TOTP not configured for this product"):
        super().__init__(message, recoverable=False)


class TOTPGenerationError(OTPRelayError):
    """TOTP secret is malformed or cannot be used."""

    error_code = "totp_generation_failed"
    status_code = 500

    def __init__(self, message: str = "TOTP generation failed"):
        super().__init__(message, recoverable=False)


# Configuration errors
class ConfigurationError(OTPRelayError):
    """Configuration error occurred."""

    def __init__(
        self,
        message: str = "Configuration error",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable=False, details=details)
