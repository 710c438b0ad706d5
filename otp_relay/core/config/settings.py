"""Application settings with Pydantic validation."""

from typing import Any, List, Optional

import regex
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from otp_relay.constants import OTP, RateLimits, TOTPDefaults


class OTPRelaySettings(BaseSettings):
    """Application settings with validation and environment variable support."""

    # Environment
    env: str = Field(
        default="production", description="Environment (production, development, testing)"
    )

    @model_validator(mode="before")
    @classmethod
    def default_env_for_pytest(cls, data: Any) -> Any:
        """Auto-detect testing environment when running under pytest."""
        import sys

        if not isinstance(data, dict):
            return data

        if ("env" not in data or not data.get("env")) and "pytest" in sys.modules:
            data["env"] = "testing"

        return data

    # Encryption Keys
    encryption_key: Optional[SecretStr] = Field(
        default=None,
        description=(
            "Base64-encoded Fernet key used to decrypt mailbox passwords and TOTP secrets. "
            'Generate with: python -c "from cryptography.fernet import Fernet; '
            'print(Fernet.generate_key().decode())"'
        ),
    )

    # API Security
    api_secret_key: Optional[SecretStr] = Field(
        default=None, description="Secret key used to verify bearer JWTs"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    # Redis Configuration
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for distributed rate limiting (leave empty for in-memory)",
    )

    # Email OTP retrieval
    default_otp_regex: str = Field(
        default=OTP.DEFAULT_PATTERN,
        description="Pattern used when an account has no usable pattern of its own",
    )
    email_fetch_limit: int = Field(
        default=OTP.FETCH_LIMIT, ge=1, le=500, description="Max messages scanned per account"
    )
    otp_time_window_hours: int = Field(
        default=OTP.TIME_WINDOW_HOURS, ge=1, description="Only scan mail newer than this"
    )
    otp_sender_denylist: str = Field(
        default="", description="Comma-separated sender fragments that are never trusted"
    )
    otp_pattern_timeout_ms: int = Field(
        default=OTP.PATTERN_TIMEOUT_MS, ge=10, description="Wall-clock budget per pattern"
    )
    imap_timeout_seconds: float = Field(
        default=OTP.IMAP_TIMEOUT_SECONDS, gt=0, description="Socket timeout for IMAP sessions"
    )
    otp_request_budget_seconds: float = Field(
        default=OTP.REQUEST_BUDGET_SECONDS,
        gt=0,
        description="Total time one OTP request may spend across all accounts",
    )

    # Rate Limiting
    otp_rate_limit: int = Field(
        default=RateLimits.OTP_MAX_REQUESTS, ge=1, description="Requests per user/product window"
    )
    otp_rate_window_seconds: int = Field(
        default=RateLimits.OTP_WINDOW_SECONDS, ge=1, description="Rate limit window in seconds"
    )

    # TOTP defaults
    totp_default_digits: int = Field(default=TOTPDefaults.DIGITS, ge=6, le=10)
    totp_default_period: int = Field(default=TOTPDefaults.PERIOD_SECONDS, ge=1)
    totp_default_algo: str = Field(default=TOTPDefaults.ALGORITHM)

    # Logging
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_json: bool = Field(default=True, description="Write JSON log files")
    outcome_log_file: Optional[str] = Field(
        default=None, description="Append attempt outcomes to this JSONL file"
    )

    # Product directory
    directory_file: Optional[str] = Field(
        default=None, description="YAML file with products, accounts, mappings and grants"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key_format(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        """Validate encryption key format (should be base64)."""
        if v is None:
            return None

        import base64
        import binascii

        try:
            decoded = base64.urlsafe_b64decode(v.get_secret_value())
        except (binascii.Error, ValueError):
            raise ValueError("ENCRYPTION_KEY must be a valid base64-encoded string")

        if len(decoded) != 32:
            raise ValueError(
                f"ENCRYPTION_KEY must decode to exactly 32 bytes, got {len(decoded)}"
            )
        return v

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value."""
        allowed = ["production", "development", "testing", "staging"]
        if v.lower() not in allowed:
            raise ValueError(f'ENV must be one of: {", ".join(allowed)}')
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f'LOG_LEVEL must be one of: {", ".join(allowed)}')
        return v_upper

    @field_validator("totp_default_algo")
    @classmethod
    def validate_totp_algorithm(cls, v: str) -> str:
        """Validate TOTP digest algorithm."""
        v_upper = v.upper()
        if v_upper not in TOTPDefaults.SUPPORTED_ALGORITHMS:
            allowed = ", ".join(sorted(TOTPDefaults.SUPPORTED_ALGORITHMS))
            raise ValueError(f"TOTP_DEFAULT_ALGO must be one of: {allowed}")
        return v_upper

    @field_validator("default_otp_regex")
    @classmethod
    def validate_default_regex(cls, v: str) -> str:
        """The global fallback pattern must always compile."""
        try:
            regex.compile(v)
        except regex.error as e:
            raise ValueError(f"DEFAULT_OTP_REGEX is not a valid pattern: {e}")
        return v

    @model_validator(mode="after")
    def ensure_required_keys_or_defaults(self) -> "OTPRelaySettings":
        """
        Ensure encryption_key and api_secret_key are set.

        In production/staging: These fields are REQUIRED
        In testing/development: Auto-generate secure defaults if missing

        Raises:
            ValueError: If required keys are missing in production/staging
        """
        import secrets

        from cryptography.fernet import Fernet

        is_test_or_dev = self.env in ("testing", "development")

        if self.encryption_key is None:
            if is_test_or_dev:
                self.encryption_key = SecretStr(Fernet.generate_key().decode())
            else:
                raise ValueError("ENCRYPTION_KEY is required in production/staging.")

        if self.api_secret_key is None:
            if is_test_or_dev:
                self.api_secret_key = SecretStr(secrets.token_urlsafe(48))
            else:
                raise ValueError("API_SECRET_KEY is required in production/staging.")

        return self

    def get_sender_denylist(self) -> List[str]:
        """Split the configured deny-list into trimmed entries."""
        return [s.strip() for s in self.otp_sender_denylist.split(",") if s.strip()]

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env == "production"


# Singleton instance
_settings: Optional[OTPRelaySettings] = None


def get_settings() -> OTPRelaySettings:
    """
    Get application settings singleton.

    Raises:
        ValidationError: If required settings are missing or invalid
    """
    global _settings
    if _settings is None:
        _settings = OTPRelaySettings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
