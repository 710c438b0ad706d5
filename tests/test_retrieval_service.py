"""Tests for OTPRetrievalService request handling."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from otp_relay.core.config import get_settings
from otp_relay.core.exceptions import (
    AccessDeniedError,
    AccessExpiredError,
    NoAccountsConfiguredError,
    OTPNotFoundError,
    ProductNotFoundError,
    RateLimitError,
    TOTPGenerationError,
    TOTPNotConfiguredError,
)
from otp_relay.core.rate_limiting import InMemoryBackend, OTPRateLimiter
from otp_relay.models import AccessGrant, OutcomeStatus, Product, TotpConfig
from otp_relay.services.otp_retrieval import (
    InMemoryOutcomeLogger,
    OTPRetrievalService,
    build_retrieval_service,
)
from otp_relay.services.otp_retrieval.service import outcome_status_for
from otp_relay.services.totp import TOTPGenerator

RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@pytest.fixture
def outcomes():
    return InMemoryOutcomeLogger()


@pytest.fixture
def limiter():
    return OTPRateLimiter(max_requests=10, window_seconds=60, backend=InMemoryBackend())


@pytest.fixture
def service(acme_directory, fake_sessions, outcomes, limiter, vault):
    return build_retrieval_service(
        acme_directory,
        outcome_logger=outcomes,
        session_factory=fake_sessions,
        rate_limiter=limiter,
        vault=vault,
    )


class TestEmailOTP:
    """Email OTP path."""

    def test_failover_scenario(self, service, acme_directory, fake_sessions, outcomes, make_message):
        fake_sessions.add("imap-a.example.com", [])
        fake_sessions.add(
            "imap-b.example.com",
            [
                make_message(
                    uid=9,
                    subject="Your login code",
                    text="Your verification code is 739201",
                    sender="Acme <no-reply@acme.com>",
                )
            ],
        )

        result = service.get_email_otp("u1", "acme")

        assert result.otp == "739201"
        assert result.account_label == "Mailbox B"
        assert [c[0] for c in fake_sessions.calls] == ["imap-a.example.com", "imap-b.example.com"]
        assert fake_sessions.calls[1][3] == "password-b"
        assert fake_sessions.sessions["imap-b.example.com"].search_calls[0][1] == [
            "no-reply@acme.com"
        ]

        assert [(o.status, o.account_id, o.detail) for o in outcomes.outcomes] == [
            (OutcomeStatus.ERROR, "acc-a", "No messages found"),
            (
                OutcomeStatus.SUCCESS,
                "acc-b",
                "OTP extracted (pattern: default, relevance: high, confidence: high, length: 6)",
            ),
        ]
        assert acme_directory.get_account("acc-b").last_used_at is not None
        assert acme_directory.get_account("acc-a").last_used_at is None

    def test_rate_limited_before_any_network_call(self, service, fake_sessions, outcomes, limiter):
        for _ in range(10):
            limiter.check("u1", "acme")

        with pytest.raises(RateLimitError) as exc_info:
            service.get_email_otp("u1", "acme")

        assert exc_info.value.retry_after == 60
        assert fake_sessions.calls == []
        assert outcomes.statuses == [OutcomeStatus.RATE_LIMITED]

    def test_unknown_product(self, service, outcomes):
        with pytest.raises(ProductNotFoundError):
            service.get_email_otp("u1", "nope")
        assert outcomes.statuses == [OutcomeStatus.PRODUCT_NOT_FOUND]
        assert outcomes.outcomes[0].product_id == "nope"

    def test_inactive_product(self, service, acme_directory, outcomes):
        acme_directory.add_product(Product(id="p-old", slug="old", title="Old", active=False))

        with pytest.raises(ProductNotFoundError):
            service.get_email_otp("u1", "old")

    def test_no_grant(self, service, fake_sessions, outcomes):
        with pytest.raises(AccessDeniedError):
            service.get_email_otp("stranger", "acme")

        assert fake_sessions.calls == []
        assert outcomes.statuses == [OutcomeStatus.NO_ACCESS]
        assert outcomes.outcomes[0].product_id == "p-acme"

    def test_expired_grant(self, service, acme_directory, fake_sessions, outcomes):
        acme_directory.grant_access(
            AccessGrant(
                user_id="u2",
                product_id="p-acme",
                expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
            )
        )

        with pytest.raises(AccessExpiredError):
            service.get_email_otp("u2", "acme")

        assert fake_sessions.calls == []
        assert outcomes.statuses == [OutcomeStatus.ACCESS_EXPIRED]
        assert outcomes.outcomes[0].product_id == "p-acme"

    def test_no_accounts(self, service, acme_directory, outcomes):
        acme_directory.add_product(Product(id="p-empty", slug="empty", title="Empty"))
        acme_directory.grant_access(AccessGrant(user_id="u1", product_id="p-empty"))

        with pytest.raises(NoAccountsConfiguredError):
            service.get_email_otp("u1", "empty")

        assert outcomes.statuses == [OutcomeStatus.NO_ACCOUNTS]

    def test_exhausted_accounts(self, service, fake_sessions, outcomes):
        fake_sessions.add("imap-a.example.com", [])
        fake_sessions.add("imap-b.example.com", [])

        with pytest.raises(OTPNotFoundError):
            service.get_email_otp("u1", "acme")

        assert outcomes.statuses == [
            OutcomeStatus.ERROR,
            OutcomeStatus.ERROR,
            OutcomeStatus.OTP_NOT_FOUND,
        ]

    def test_outcome_logger_failure_does_not_fail_request(
        self, acme_directory, fake_sessions, limiter, vault, make_message
    ):
        broken = MagicMock()
        broken.record.side_effect = IOError("disk full")
        fake_sessions.add(
            "imap-a.example.com",
            [make_message(uid=1, subject="Your code", text="code 739201")],
        )
        service = build_retrieval_service(
            acme_directory,
            outcome_logger=broken,
            session_factory=fake_sessions,
            rate_limiter=limiter,
            vault=vault,
        )

        assert service.get_email_otp("u1", "acme").otp == "739201"
        assert broken.record.called

    def test_unexpected_error_recorded_as_error(self, acme_directory, limiter, vault, outcomes):
        failover = MagicMock()
        failover.run.side_effect = RuntimeError("bug")
        service = OTPRetrievalService(
            acme_directory, limiter, failover, TOTPGenerator(vault), outcomes
        )

        with pytest.raises(RuntimeError):
            service.get_email_otp("u1", "acme")

        assert outcomes.statuses == [OutcomeStatus.ERROR]
        assert outcomes.outcomes[0].detail == "Internal error"


class TestTOTP:
    """TOTP path."""

    def test_generates_code(self, service, acme_directory, vault, outcomes):
        acme_directory.set_totp_config(
            "p-acme",
            TotpConfig(secret_ref=vault.encrypt(RFC_SECRET), issuer="Acme", account_label="ops"),
        )

        result = service.get_totp("u1", "acme")

        assert len(result.code) == 6
        assert result.code.isdigit()
        assert 1 <= result.valid_for_seconds <= 30
        assert result.issuer == "Acme"
        assert result.account_label == "ops"
        assert outcomes.statuses == [OutcomeStatus.SUCCESS]

    def test_not_configured(self, service, outcomes):
        with pytest.raises(TOTPNotConfiguredError):
            service.get_totp("u1", "acme")
        assert outcomes.statuses == [OutcomeStatus.TOTP_NOT_CONFIGURED]

    def test_undecryptable_secret(self, service, acme_directory, outcomes):
        acme_directory.set_totp_config("p-acme", TotpConfig(secret_ref="garbage"))

        with pytest.raises(TOTPGenerationError):
            service.get_totp("u1", "acme")
        assert outcomes.statuses == [OutcomeStatus.ERROR]

    def test_totp_requires_grant(self, service, outcomes):
        with pytest.raises(AccessDeniedError):
            service.get_totp("stranger", "acme")

        assert outcomes.statuses == [OutcomeStatus.NO_ACCESS]
        assert outcomes.outcomes[0].product_id == "p-acme"

    def test_totp_shares_rate_limit(self, service, acme_directory, vault, limiter):
        acme_directory.set_totp_config("p-acme", TotpConfig(secret_ref=vault.encrypt(RFC_SECRET)))
        for _ in range(10):
            service.get_totp("u1", "acme")

        with pytest.raises(RateLimitError):
            service.get_totp("u1", "acme")


class TestOutcomeStatusFor:
    def test_mapping(self):
        assert outcome_status_for(RateLimitError()) == OutcomeStatus.RATE_LIMITED
        assert outcome_status_for(ProductNotFoundError("x")) == OutcomeStatus.PRODUCT_NOT_FOUND
        assert outcome_status_for(OTPNotFoundError()) == OutcomeStatus.OTP_NOT_FOUND
        assert outcome_status_for(TOTPGenerationError()) == OutcomeStatus.ERROR
        assert outcome_status_for(ValueError()) == OutcomeStatus.ERROR


class TestFactory:
    def test_uses_settings(self, monkeypatch, acme_directory):
        monkeypatch.setenv("OTP_RATE_LIMIT", "2")
        from otp_relay.core.config import reset_settings

        reset_settings()
        service = build_retrieval_service(acme_directory, outcome_logger=InMemoryOutcomeLogger())

        assert get_settings().otp_rate_limit == 2
        assert isinstance(service, OTPRetrievalService)
