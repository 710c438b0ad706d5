"""Wire an OTPRetrievalService from settings."""

from typing import Optional

from otp_relay.core.config import OTPRelaySettings, get_settings
from otp_relay.core.rate_limiting import OTPRateLimiter, get_otp_rate_limiter
from otp_relay.repositories.base import ProductDirectory
from otp_relay.services.totp.generator import TOTPGenerator
from otp_relay.utils.encryption import CredentialVault, get_credential_vault

from .confidence import ConfidenceScorer
from .failover import AccountFailoverController, AccountScanner
from .mailbox_session import SessionFactory, default_session_factory
from .outcome_logger import LoguruOutcomeLogger, OutcomeLogger, SafeOutcomeLogger
from .pattern_matcher import OTPPatternMatcher
from .service import OTPRetrievalService


def build_retrieval_service(
    directory: ProductDirectory,
    settings: Optional[OTPRelaySettings] = None,
    outcome_logger: Optional[OutcomeLogger] = None,
    session_factory: Optional[SessionFactory] = None,
    rate_limiter: Optional[OTPRateLimiter] = None,
    vault: Optional[CredentialVault] = None,
) -> OTPRetrievalService:
    """
    Build a retrieval service with production defaults.

    Any collaborator may be passed in explicitly; the rest come from
    settings and the module-level singletons.

    Args:
        directory: Product directory
        settings: Settings (defaults to get_settings())
        outcome_logger: Outcome sink (defaults to LoguruOutcomeLogger)
        session_factory: IMAP session factory
        rate_limiter: Rate limiter (defaults to the shared singleton)
        vault: Credential vault (defaults to the shared singleton)

    Returns:
        OTPRetrievalService
    """
    settings = settings or get_settings()
    vault = vault or get_credential_vault()
    outcomes = SafeOutcomeLogger(
        outcome_logger or LoguruOutcomeLogger(settings.outcome_log_file)
    )

    scanner = AccountScanner(
        session_factory=session_factory or default_session_factory(settings.imap_timeout_seconds),
        pattern_matcher=OTPPatternMatcher(timeout_ms=settings.otp_pattern_timeout_ms),
        scorer=ConfidenceScorer(),
        default_pattern=settings.default_otp_regex,
        fetch_limit=settings.email_fetch_limit,
        time_window_hours=settings.otp_time_window_hours,
        sender_denylist=settings.get_sender_denylist(),
    )
    failover = AccountFailoverController(
        scan=scanner,
        vault=vault,
        outcome_logger=outcomes,
        on_success=directory.touch_account_last_used,
        budget_seconds=settings.otp_request_budget_seconds,
    )
    totp = TOTPGenerator(
        vault,
        default_digits=settings.totp_default_digits,
        default_period=settings.totp_default_period,
        default_algorithm=settings.totp_default_algo,
    )
    return OTPRetrievalService(
        directory=directory,
        rate_limiter=rate_limiter or get_otp_rate_limiter(),
        failover=failover,
        totp_generator=totp,
        outcome_logger=outcomes,
    )
