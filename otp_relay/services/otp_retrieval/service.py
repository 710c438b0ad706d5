"""OTP retrieval service.

Runs one user request through the state machine:
rate limit, product lookup, access check, then either account failover
(email OTP) or code generation (TOTP). Exactly one terminal outcome is
recorded per request.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from loguru import logger

from otp_relay.core.exceptions import (
    AccessDeniedError,
    AccessExpiredError,
    DecryptionError,
    OTPRelayError,
    ProductNotFoundError,
    RateLimitError,
    TOTPGenerationError,
    TOTPNotConfiguredError,
)
from otp_relay.core.rate_limiting import OTPRateLimiter
from otp_relay.models import AttemptOutcome, OTPResult, OutcomeStatus, Product, TOTPResult
from otp_relay.repositories.base import ProductDirectory
from otp_relay.services.totp.generator import TOTPGenerator

from .failover import AccountFailoverController
from .outcome_logger import OutcomeLogger, SafeOutcomeLogger

# Error codes that are also outcome statuses; anything else is "error"
_STATUS_BY_ERROR_CODE = {status.value: status for status in OutcomeStatus}


def outcome_status_for(error: Exception) -> OutcomeStatus:
    """Map an exception to the outcome status recorded for it."""
    if isinstance(error, OTPRelayError):
        return _STATUS_BY_ERROR_CODE.get(error.error_code, OutcomeStatus.ERROR)
    return OutcomeStatus.ERROR


class OTPRetrievalService:
    """Entry point for email OTP and TOTP requests."""

    def __init__(
        self,
        directory: ProductDirectory,
        rate_limiter: OTPRateLimiter,
        failover: AccountFailoverController,
        totp_generator: TOTPGenerator,
        outcome_logger: OutcomeLogger,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize retrieval service.

        Args:
            directory: Product, grant and account lookups
            rate_limiter: Per (user, product) admission gate
            failover: Email OTP account loop
            totp_generator: TOTP code generator
            outcome_logger: Receives terminal outcomes (wrapped so it never raises)
            now: Clock used for grant expiry
        """
        self._directory = directory
        self._rate_limiter = rate_limiter
        self._failover = failover
        self._totp = totp_generator
        self._outcomes = (
            outcome_logger
            if isinstance(outcome_logger, SafeOutcomeLogger)
            else SafeOutcomeLogger(outcome_logger)
        )
        self._now = now

    def _record(
        self,
        user_id: str,
        product_id: str,
        status: OutcomeStatus,
        detail: str,
        account_id: Optional[str] = None,
    ) -> None:
        self._outcomes.record(
            AttemptOutcome(
                user_id=user_id,
                product_id=product_id,
                account_id=account_id,
                status=status,
                detail=detail,
            )
        )

    def _resolve_product(self, user_id: str, product_slug: str) -> Product:
        """
        Rate limit, then resolve an active product by slug.

        Raises:
            RateLimitError: If the (user, product) window is exhausted
            ProductNotFoundError: If the product is unknown or inactive
        """
        if not self._rate_limiter.check(user_id, product_slug):
            raise RateLimitError(retry_after=self._rate_limiter.window_seconds)

        product = self._directory.get_product_by_slug(product_slug)
        if product is None or not product.active:
            raise ProductNotFoundError(product_slug)
        return product

    def _check_grant(self, user_id: str, product: Product) -> None:
        """
        Check that the user holds an unexpired grant for the product.

        Raises:
            AccessDeniedError: If the user holds no grant
            AccessExpiredError: If the grant has expired
        """
        grant = self._directory.get_access_grant(user_id, product.id)
        if grant is None:
            raise AccessDeniedError()
        if grant.is_expired(self._now()):
            raise AccessExpiredError()

    def _fail(self, user_id: str, product_id: str, error: Exception) -> None:
        status = outcome_status_for(error)
        if isinstance(error, OTPRelayError):
            detail = error.message
        else:
            logger.exception(f"Unexpected error serving product {product_id}: {error}")
            detail = "Internal error"
        self._record(user_id, product_id, status, detail)

    def get_email_otp(self, user_id: str, product_slug: str) -> OTPResult:
        """
        Find the latest trustworthy OTP in the product's mailboxes.

        Args:
            user_id: Requesting user
            product_slug: Product slug

        Returns:
            OTPResult with the code and its provenance

        Raises:
            OTPRelayError: For every non-success terminal state
        """
        product_id = product_slug
        try:
            product = self._resolve_product(user_id, product_slug)
            product_id = product.id
            self._check_grant(user_id, product)
            targets = self._directory.list_account_targets(product.id)
            # The failover controller records the success outcome itself
            return self._failover.run(user_id, product.id, targets)
        except Exception as e:
            self._fail(user_id, product_id, e)
            raise

    def get_totp(self, user_id: str, product_slug: str) -> TOTPResult:
        """
        Generate the current TOTP code for a product.

        Args:
            user_id: Requesting user
            product_slug: Product slug

        Returns:
            TOTPResult with the code and remaining lifetime

        Raises:
            OTPRelayError: For every non-success terminal state
        """
        product_id = product_slug
        try:
            product = self._resolve_product(user_id, product_slug)
            product_id = product.id
            self._check_grant(user_id, product)

            config = self._directory.get_totp_config(product.id)
            if config is None or not config.secret_ref:
                raise TOTPNotConfiguredError()

            try:
                result = self._totp.generate(config)
            except DecryptionError as e:
                raise TOTPGenerationError("TOTP secret could not be decrypted") from e

            self._record(user_id, product.id, OutcomeStatus.SUCCESS, "TOTP code generated")
            return result
        except Exception as e:
            self._fail(user_id, product_id, e)
            raise
