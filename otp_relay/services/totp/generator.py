"""TOTP code generation (RFC 6238)."""

import hashlib
import re
import time
from typing import Callable, Optional

import pyotp
from loguru import logger

from otp_relay.constants import TOTPDefaults
from otp_relay.core.exceptions import TOTPGenerationError
from otp_relay.models import TOTPResult, TotpConfig
from otp_relay.utils.encryption import REDACTED, CredentialVault

_DIGESTS = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}
_NON_BASE32 = re.compile(r"[^A-Z2-7]")


def clean_secret(secret: str) -> str:
    """Normalize a secret to RFC 4648 Base32: upper-case, A-Z and 2-7 only."""
    return _NON_BASE32.sub("", (secret or "").upper())


def _build_totp(
    cleaned: str, digits: int = 6, period: int = 30, algorithm: str = "SHA1"
) -> pyotp.TOTP:
    """Build a pyotp TOTP, rejecting secrets that do not decode to a key."""
    totp = pyotp.TOTP(cleaned, digits=digits, digest=_DIGESTS[algorithm], interval=period)
    try:
        key = totp.byte_secret()
    except ValueError as e:
        raise TOTPGenerationError(f"Invalid TOTP secret: {e}")
    if not key:
        raise TOTPGenerationError("Invalid TOTP secret: empty key")
    return totp


def validate_secret(secret: str) -> bool:
    """Check that a secret is usable Base32 of sufficient length."""
    cleaned = clean_secret(secret)
    if len(cleaned) < TOTPDefaults.MIN_SECRET_LENGTH:
        return False
    try:
        _build_totp(cleaned)
    except TOTPGenerationError:
        return False
    return True


def generate_random_secret(length: int = 32) -> str:
    """Generate a random Base32 secret."""
    return pyotp.random_base32(length=length)


class TOTPGenerator:
    """Generates the current TOTP code for a product's encrypted secret."""

    def __init__(
        self,
        vault: CredentialVault,
        default_digits: int = TOTPDefaults.DIGITS,
        default_period: int = TOTPDefaults.PERIOD_SECONDS,
        default_algorithm: str = TOTPDefaults.ALGORITHM,
        clock: Callable[[], float] = time.time,
    ):
        self._vault = vault
        self._default_digits = default_digits
        self._default_period = default_period
        self._default_algorithm = default_algorithm
        self._clock = clock

    def generate_code(
        self,
        secret: str,
        digits: Optional[int] = None,
        period: Optional[int] = None,
        algorithm: Optional[str] = None,
    ) -> TOTPResult:
        """
        Generate a code from a plaintext secret.

        Args:
            secret: Base32 secret, separators and case are ignored
            digits: Code length (default from settings)
            period: Time step in seconds (default from settings)
            algorithm: Digest name (default from settings)

        Returns:
            TOTPResult with the code and its remaining lifetime

        Raises:
            TOTPGenerationError: If the secret or parameters are unusable
        """
        digits = digits or self._default_digits
        period = period or self._default_period
        algorithm = (algorithm or self._default_algorithm).upper()

        if algorithm not in _DIGESTS:
            raise TOTPGenerationError(f"Unsupported TOTP algorithm: {algorithm}")
        if period <= 0 or not 1 <= digits <= 10:
            raise TOTPGenerationError("Invalid TOTP digits or period")

        totp = _build_totp(clean_secret(secret), digits, period, algorithm)
        now = int(self._clock())
        return TOTPResult(code=totp.at(now), valid_for_seconds=period - (now % period))

    def generate(self, config: TotpConfig) -> TOTPResult:
        """
        Decrypt a product's secret and generate its current code.

        Raises:
            DecryptionError: If the stored secret cannot be decrypted
            TOTPGenerationError: If the decrypted secret is malformed
        """
        secret = self._vault.decrypt(config.secret_ref)
        try:
            result = self.generate_code(
                secret, config.digits, config.period_seconds, config.algorithm
            )
        except TOTPGenerationError:
            logger.error(f"TOTP generation failed for secret {REDACTED}")
            raise
        result.issuer = config.issuer
        result.account_label = config.account_label
        return result
