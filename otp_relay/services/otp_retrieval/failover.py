"""Account failover for email OTP retrieval.

The controller walks a product's accounts by descending weight and stops at
the first accepted code. Every account that fails or yields nothing produces
one ``error`` outcome; the account that succeeds produces one ``success``.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from loguru import logger

from otp_relay.constants import OTP
from otp_relay.core.exceptions import (
    DecryptionError,
    MailboxError,
    NoAccountsConfiguredError,
    OTPNotFoundError,
)
from otp_relay.models import AccountTarget, AttemptOutcome, OTPResult, OutcomeStatus
from otp_relay.utils.encryption import REDACTED, CredentialVault

from .confidence import ConfidenceScorer
from .mailbox_session import SessionFactory, default_session_factory
from .message_filter import MessageFilter, build_filter_config
from .outcome_logger import OutcomeLogger
from .pattern_matcher import OTPPatternMatcher, build_pattern_set, build_search_text

NO_MESSAGES = "No messages found"
NO_CANDIDATE = "No qualifying OTP candidate"
DEADLINE_EXCEEDED = "Request deadline exceeded"
DECRYPTION_FAILED = "Credential decryption failed"


class Deadline:
    """Total time budget for one request."""

    def __init__(self, budget_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = clock() + budget_seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._clock() >= self._expires_at


@dataclass
class ScanOutcome:
    """What one account scan produced."""

    result: Optional[OTPResult] = None
    detail: str = ""
    deadline_exceeded: bool = False


# (target, decrypted password, deadline) -> ScanOutcome
AccountScan = Callable[[AccountTarget, str, Deadline], ScanOutcome]


class AccountScanner:
    """Scans one mailbox for an acceptable OTP."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        pattern_matcher: Optional[OTPPatternMatcher] = None,
        scorer: Optional[ConfidenceScorer] = None,
        default_pattern: str = OTP.DEFAULT_PATTERN,
        fetch_limit: int = OTP.FETCH_LIMIT,
        time_window_hours: int = OTP.TIME_WINDOW_HOURS,
        sender_denylist: Optional[List[str]] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory or default_session_factory()
        self._matcher = pattern_matcher or OTPPatternMatcher()
        self._scorer = scorer or ConfidenceScorer()
        self._default_pattern = default_pattern
        self._fetch_limit = fetch_limit
        self._time_window_hours = time_window_hours
        self._denylist = list(sender_denylist or [])
        self._now = now

    def __call__(self, target: AccountTarget, password: str, deadline: Deadline) -> ScanOutcome:
        return self.scan(target, password, deadline)

    def scan(self, target: AccountTarget, password: str, deadline: Deadline) -> ScanOutcome:
        """
        Search, fetch and score messages for one account.

        Messages are read most recent first, up to the fetch limit.

        Raises:
            MailboxError: If connecting, searching or fetching fails
        """
        account = target.account
        message_filter = MessageFilter(
            build_filter_config(target, self._denylist, self._time_window_hours),
            now=self._now(),
        )
        patterns = build_pattern_set(target.pattern, self._default_pattern)

        session = self._session_factory(account.host, account.port, account.username, password)
        with session:
            uids = session.search(message_filter.cutoff, message_filter.search_senders)
            uids = uids[: self._fetch_limit]
            if not uids:
                return ScanOutcome(detail=NO_MESSAGES)

            logger.debug(f"Scanning {len(uids)} message(s) in account {account.label}")
            for uid in uids:
                if deadline.expired():
                    return ScanOutcome(detail=DEADLINE_EXCEEDED, deadline_exceeded=True)

                message = session.fetch(uid)
                if message is None or not message_filter.accepts(message):
                    continue

                search_text = build_search_text(
                    message.subject, message.text_body, message.html_body
                )
                candidates = self._matcher.extract(search_text, patterns)
                if not candidates:
                    continue

                scored = self._scorer.select(candidates, message, search_text, message_filter)
                if scored is None:
                    continue

                return ScanOutcome(
                    result=OTPResult(
                        otp=scored.candidate.text,
                        from_address=message.from_address or "Unknown",
                        subject=message.subject,
                        account_id=account.id,
                        account_label=account.label,
                        pattern_id=scored.candidate.pattern_id,
                        relevance=scored.relevance,
                        received_at=message.received_at,
                    )
                )

        return ScanOutcome(detail=NO_CANDIDATE)


def order_targets(targets: Iterable[AccountTarget]) -> List[AccountTarget]:
    """Sort by descending weight, keeping input order among equal weights."""
    return sorted(targets, key=lambda t: -t.weight)


class AccountFailoverController:
    """Tries accounts one after another until one yields an accepted OTP."""

    def __init__(
        self,
        scan: AccountScan,
        vault: CredentialVault,
        outcome_logger: OutcomeLogger,
        on_success: Optional[Callable[[str], None]] = None,
        budget_seconds: float = OTP.REQUEST_BUDGET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize failover controller.

        Args:
            scan: Scans one account (AccountScanner or a test double)
            vault: Decrypts account passwords
            outcome_logger: Receives per-account and success outcomes
            on_success: Called with the account id that produced the code
            budget_seconds: Total time the whole account loop may take
            clock: Monotonic clock used for the deadline
        """
        self._scan = scan
        self._vault = vault
        self._outcomes = outcome_logger
        self._on_success = on_success
        self._budget_seconds = budget_seconds
        self._clock = clock

    def _record(
        self,
        user_id: str,
        product_id: str,
        status: OutcomeStatus,
        account_id: Optional[str],
        detail: str,
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

    def _mark_used(self, account_id: str) -> None:
        if self._on_success is None:
            return
        try:
            self._on_success(account_id)
        except Exception as e:
            logger.warning(f"Failed to update last use of account {account_id}: {e}")

    def run(self, user_id: str, product_id: str, targets: Iterable[AccountTarget]) -> OTPResult:
        """
        Run failover across the given accounts.

        Args:
            user_id: Requesting user
            product_id: Product being served
            targets: Active account targets for the product

        Returns:
            OTPResult from the first account with an accepted code

        Raises:
            NoAccountsConfiguredError: If there are no accounts to try
            OTPNotFoundError: If every account was tried without success
        """
        ordered = order_targets(targets)
        if not ordered:
            raise NoAccountsConfiguredError()

        deadline = Deadline(self._budget_seconds, self._clock)

        for target in ordered:
            account = target.account
            if deadline.expired():
                logger.warning(f"OTP request deadline exceeded before account {account.label}")
                self._record(user_id, product_id, OutcomeStatus.ERROR, account.id, DEADLINE_EXCEEDED)
                break

            try:
                password = self._vault.decrypt(account.credential_ref)
            except DecryptionError as e:
                logger.error(f"Cannot decrypt credential {REDACTED} for account {account.label}: {e}")
                self._record(user_id, product_id, OutcomeStatus.ERROR, account.id, DECRYPTION_FAILED)
                continue

            try:
                outcome = self._scan(target, password, deadline)
            except MailboxError as e:
                logger.warning(f"Account {account.label} failed: {e.message}")
                self._record(
                    user_id, product_id, OutcomeStatus.ERROR, account.id, f"IMAP error: {e.message}"
                )
                continue
            except Exception as e:
                logger.exception(f"Unexpected error scanning account {account.label}: {e}")
                self._record(
                    user_id, product_id, OutcomeStatus.ERROR, account.id, f"Connection error: {e}"
                )
                continue

            if outcome.result is not None:
                result = outcome.result
                self._record(
                    user_id,
                    product_id,
                    OutcomeStatus.SUCCESS,
                    account.id,
                    f"OTP extracted (pattern: {result.pattern_id}, relevance: {result.relevance}, "
                    f"confidence: high, length: {len(result.otp)})",
                )
                logger.info(f"OTP found in account {account.label} for product {product_id}")
                self._mark_used(account.id)
                return result

            self._record(user_id, product_id, OutcomeStatus.ERROR, account.id, outcome.detail)
            if outcome.deadline_exceeded:
                logger.warning(f"OTP request deadline exceeded in account {account.label}")
                break

        raise OTPNotFoundError()
