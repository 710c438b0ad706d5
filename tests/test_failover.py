"""Tests for the account scanner and failover controller."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from otp_relay.core.exceptions import (
    MailboxConnectionError,
    MailboxFetchError,
    NoAccountsConfiguredError,
    OTPNotFoundError,
)
from otp_relay.models import (
    Account,
    AccountTarget,
    OTPResult,
    OutcomeStatus,
    ProductAccountMapping,
)
from otp_relay.services.otp_retrieval import InMemoryOutcomeLogger
from otp_relay.services.otp_retrieval.failover import (
    DEADLINE_EXCEEDED,
    DECRYPTION_FAILED,
    NO_CANDIDATE,
    NO_MESSAGES,
    AccountFailoverController,
    AccountScanner,
    Deadline,
    ScanOutcome,
    order_targets,
)
from otp_relay.services.otp_retrieval.mailbox_session import MailboxSession


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _target(account_id, weight=100, credential_ref="", host=None, **account_kwargs):
    account = Account(
        id=account_id,
        label=f"Mailbox {account_id}",
        host=host or f"imap-{account_id}.example.com",
        username=f"{account_id}@example.com",
        credential_ref=credential_ref,
        **account_kwargs,
    )
    mapping = ProductAccountMapping(product_id="p1", account_id=account_id, weight=weight)
    return AccountTarget(account=account, mapping=mapping)


def _result(account_id, otp="739201"):
    return OTPResult(
        otp=otp,
        from_address="no-reply@acme.com",
        subject="Your login code",
        account_id=account_id,
        account_label=f"Mailbox {account_id}",
        pattern_id="default",
        relevance="high",
    )


class TestOrderTargets:
    """Tests for order_targets."""

    def test_descending_weight(self):
        targets = [_target("a", 50), _target("b", 100), _target("c", 10)]
        assert [t.weight for t in order_targets(targets)] == [100, 50, 10]

    def test_ties_keep_input_order(self):
        targets = [_target("x", 10), _target("y", 20), _target("z", 10), _target("w", 20)]
        assert [t.account.id for t in order_targets(targets)] == ["y", "w", "x", "z"]


class TestDeadline:
    def test_expiry(self):
        clock = FakeClock(100.0)
        deadline = Deadline(5, clock)
        assert not deadline.expired()
        assert deadline.remaining() == 5
        clock.now = 105.0
        assert deadline.expired()
        assert deadline.remaining() == 0.0


class TestAccountFailoverController:
    """Tests for AccountFailoverController.run."""

    @pytest.fixture
    def outcomes(self):
        return InMemoryOutcomeLogger()

    def _controller(self, scan, vault, outcomes, **kwargs):
        return AccountFailoverController(scan=scan, vault=vault, outcome_logger=outcomes, **kwargs)

    def test_empty_targets_raise_no_accounts(self, vault, outcomes):
        scan = MagicMock()

        with pytest.raises(NoAccountsConfiguredError):
            self._controller(scan, vault, outcomes).run("u1", "p1", [])

        scan.assert_not_called()
        assert outcomes.outcomes == []

    def test_tries_accounts_in_weight_order(self, vault, outcomes):
        tried = []

        def scan(target, password, deadline):
            tried.append((target.account.id, password))
            return ScanOutcome(detail=NO_MESSAGES)

        targets = [
            _target("a", 50, vault.encrypt("pa")),
            _target("b", 100, vault.encrypt("pb")),
            _target("c", 10, vault.encrypt("pc")),
        ]

        with pytest.raises(OTPNotFoundError):
            self._controller(scan, vault, outcomes).run("u1", "p1", targets)

        assert tried == [("b", "pb"), ("a", "pa"), ("c", "pc")]
        assert outcomes.statuses == [OutcomeStatus.ERROR] * 3
        assert [o.account_id for o in outcomes.outcomes] == ["b", "a", "c"]
        assert all(o.detail == NO_MESSAGES for o in outcomes.outcomes)

    def test_first_success_stops(self, vault, outcomes):
        scan = MagicMock(
            side_effect=[ScanOutcome(detail=NO_CANDIDATE), ScanOutcome(result=_result("b"))]
        )
        on_success = MagicMock()
        targets = [
            _target("a", 100, vault.encrypt("pa")),
            _target("b", 50, vault.encrypt("pb")),
            _target("c", 10, vault.encrypt("pc")),
        ]

        result = self._controller(scan, vault, outcomes, on_success=on_success).run(
            "u1", "p1", targets
        )

        assert result.otp == "739201"
        assert scan.call_count == 2
        on_success.assert_called_once_with("b")
        assert outcomes.statuses == [OutcomeStatus.ERROR, OutcomeStatus.SUCCESS]
        assert outcomes.outcomes[0].detail == NO_CANDIDATE
        assert outcomes.outcomes[1].detail == (
            "OTP extracted (pattern: default, relevance: high, confidence: high, length: 6)"
        )

    def test_decryption_failure_continues(self, vault, outcomes):
        scan = MagicMock(return_value=ScanOutcome(result=_result("b")))
        targets = [
            _target("a", 100, "not-a-fernet-token"),
            _target("b", 50, vault.encrypt("pb")),
        ]

        result = self._controller(scan, vault, outcomes).run("u1", "p1", targets)

        assert result.account_id == "b"
        assert scan.call_count == 1
        assert outcomes.outcomes[0].account_id == "a"
        assert outcomes.outcomes[0].detail == DECRYPTION_FAILED

    def test_mailbox_error_continues(self, vault, outcomes):
        scan = MagicMock(
            side_effect=[
                MailboxConnectionError("IMAP connection failed: AUTHENTICATIONFAILED"),
                MailboxFetchError("IMAP fetch failed: gone"),
                ScanOutcome(result=_result("c")),
            ]
        )
        targets = [
            _target("a", 30, vault.encrypt("pa")),
            _target("b", 20, vault.encrypt("pb")),
            _target("c", 10, vault.encrypt("pc")),
        ]

        result = self._controller(scan, vault, outcomes).run("u1", "p1", targets)

        assert result.account_id == "c"
        assert [o.detail for o in outcomes.outcomes[:2]] == [
            "IMAP error: IMAP connection failed: AUTHENTICATIONFAILED",
            "IMAP error: IMAP fetch failed: gone",
        ]

    def test_unexpected_error_continues(self, vault, outcomes):
        scan = MagicMock(
            side_effect=[ValueError("invalid literal for int()"), ScanOutcome(result=_result("b"))]
        )
        targets = [
            _target("a", 100, vault.encrypt("pa")),
            _target("b", 50, vault.encrypt("pb")),
        ]

        result = self._controller(scan, vault, outcomes).run("u1", "p1", targets)

        assert result.account_id == "b"
        assert outcomes.statuses == [OutcomeStatus.ERROR, OutcomeStatus.SUCCESS]
        assert outcomes.outcomes[0].account_id == "a"
        assert outcomes.outcomes[0].detail == "Connection error: invalid literal for int()"

    def test_non_ascii_password_fails_over(self, vault, outcomes, fake_sessions, make_message):
        fake_sessions.add(
            "imap-b.example.com",
            [
                make_message(
                    uid=1, subject="Your login code", text="Your verification code is 739201"
                )
            ],
        )

        def session_factory(host, port, username, password):
            if host == "imap-a.example.com":
                return MailboxSession(host, port, username, password)
            return fake_sessions(host, port, username, password)

        targets = [
            _target("a", 100, vault.encrypt("pässwörd")),
            _target("b", 50, vault.encrypt("pb")),
        ]

        with patch("imaplib.IMAP4_SSL") as ssl_class:
            connection = ssl_class.return_value
            connection.login.side_effect = lambda user, password: bytes(password, "ascii")
            scanner = AccountScanner(session_factory=session_factory)

            result = self._controller(scanner, vault, outcomes).run("u1", "p1", targets)

        connection.logout.assert_called_once()
        assert result.account_id == "b"
        assert outcomes.outcomes[0].detail == (
            "IMAP error: IMAP connection failed: credentials must be ASCII"
        )

    def test_last_used_failure_keeps_result(self, vault, outcomes):
        scan = MagicMock(return_value=ScanOutcome(result=_result("a")))
        on_success = MagicMock(side_effect=RuntimeError("directory offline"))

        result = self._controller(scan, vault, outcomes, on_success=on_success).run(
            "u1", "p1", [_target("a", credential_ref=vault.encrypt("pa"))]
        )

        assert result.otp == "739201"
        on_success.assert_called_once_with("a")
        assert outcomes.statuses == [OutcomeStatus.SUCCESS]

    def test_deadline_skips_remaining_accounts(self, vault, outcomes):
        clock = FakeClock()

        def slow_scan(target, password, deadline):
            clock.now += 11
            return ScanOutcome(detail=NO_MESSAGES)

        targets = [
            _target("a", 100, vault.encrypt("pa")),
            _target("b", 50, vault.encrypt("pb")),
        ]
        controller = self._controller(slow_scan, vault, outcomes, budget_seconds=10, clock=clock)

        with pytest.raises(OTPNotFoundError):
            controller.run("u1", "p1", targets)

        assert [(o.account_id, o.detail) for o in outcomes.outcomes] == [
            ("a", NO_MESSAGES),
            ("b", DEADLINE_EXCEEDED),
        ]

    def test_deadline_inside_scan_stops_loop(self, vault, outcomes):
        scan = MagicMock(return_value=ScanOutcome(detail=DEADLINE_EXCEEDED, deadline_exceeded=True))
        targets = [
            _target("a", 100, vault.encrypt("pa")),
            _target("b", 50, vault.encrypt("pb")),
        ]

        with pytest.raises(OTPNotFoundError):
            self._controller(scan, vault, outcomes).run("u1", "p1", targets)

        assert scan.call_count == 1
        assert [o.detail for o in outcomes.outcomes] == [DEADLINE_EXCEEDED]


class TestAccountScanner:
    """Tests for AccountScanner.scan with fake sessions."""

    def _scanner(self, fake_sessions, **kwargs):
        return AccountScanner(session_factory=fake_sessions, **kwargs)

    def test_no_messages(self, fake_sessions):
        fake_sessions.add("imap-a.example.com", [])

        outcome = self._scanner(fake_sessions)(_target("a"), "pw", Deadline(60))

        assert outcome.result is None
        assert outcome.detail == NO_MESSAGES
        assert fake_sessions.calls == [("imap-a.example.com", 993, "a@example.com", "pw")]
        assert fake_sessions.sessions["imap-a.example.com"].closed

    def test_returns_accepted_code_with_provenance(self, fake_sessions, make_message):
        fake_sessions.add(
            "imap-a.example.com",
            [make_message(uid=3, subject="Your login code", text="Use 739201 to sign in")],
        )

        outcome = self._scanner(fake_sessions)(_target("a"), "pw", Deadline(60))

        result = outcome.result
        assert result.otp == "739201"
        assert result.subject == "Your login code"
        assert result.from_address == "no-reply@acme.com"
        assert result.account_id == "a"
        assert result.pattern_id == "default"
        assert result.relevance == "high"

    def test_most_recent_message_wins(self, fake_sessions, make_message):
        session = fake_sessions.add(
            "imap-a.example.com",
            [
                make_message(uid=1, subject="Login code", text="old 111333", age_minutes=30),
                make_message(uid=2, subject="Login code", text="new 482913", age_minutes=1),
            ],
        )

        outcome = self._scanner(fake_sessions)(_target("a"), "pw", Deadline(60))

        assert outcome.result.otp == "482913"
        assert session.fetched == [2]

    def test_no_qualifying_candidate(self, fake_sessions, make_message):
        fake_sessions.add(
            "imap-a.example.com",
            [
                make_message(uid=1, subject="Newsletter", text="Order 482913 shipped"),
                make_message(uid=2, subject="Your code", text="111111"),
            ],
        )

        outcome = self._scanner(fake_sessions)(_target("a"), "pw", Deadline(60))

        assert outcome.result is None
        assert outcome.detail == NO_CANDIDATE

    def test_fetch_limit(self, fake_sessions, make_message):
        messages = [make_message(uid=i, subject="Hi", text="nothing here") for i in range(1, 31)]
        session = fake_sessions.add("imap-a.example.com", messages)

        self._scanner(fake_sessions, fetch_limit=20)(_target("a"), "pw", Deadline(60))

        assert session.fetched == list(range(30, 10, -1))

    def test_sender_filter_and_cutoff_passed_to_search(self, fake_sessions):
        session = fake_sessions.add("imap-a.example.com", [])
        now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        target = _target("a", default_sender_filter="no-reply@acme.com, alerts@acme.com")

        self._scanner(fake_sessions, time_window_hours=6, now=lambda: now)(
            target, "pw", Deadline(60)
        )

        since, senders = session.search_calls[0]
        assert since == now - timedelta(hours=6)
        assert senders == ["no-reply@acme.com", "alerts@acme.com"]

    def test_denylisted_sender_skipped(self, fake_sessions, make_message):
        fake_sessions.add(
            "imap-a.example.com",
            [make_message(uid=1, subject="Your code", text="482913", sender="x@phish.example")],
        )

        outcome = self._scanner(fake_sessions, sender_denylist=["phish.example"])(
            _target("a"), "pw", Deadline(60)
        )

        assert outcome.detail == NO_CANDIDATE

    def test_account_pattern_used(self, fake_sessions, make_message):
        fake_sessions.add(
            "imap-a.example.com",
            [make_message(uid=1, subject="Hello", text="Ref: Q-5521 sent")],
        )
        target = _target(
            "a", default_pattern=r"Q-(\d{4})", default_sender_filter="no-reply@acme.com"
        )

        outcome = self._scanner(fake_sessions)(target, "pw", Deadline(60))

        assert outcome.result.otp == "5521"
        assert outcome.result.pattern_id == "configured"
        assert outcome.result.relevance == "low"

    def test_deadline_checked_before_each_fetch(self, fake_sessions, make_message):
        session = fake_sessions.add(
            "imap-a.example.com",
            [make_message(uid=i, subject="Hi", text="nothing") for i in range(1, 4)],
        )
        clock = FakeClock()
        deadline = Deadline(10, clock)
        original_fetch = session.fetch

        def fetch_and_wait(uid):
            clock.now += 6
            return original_fetch(uid)

        session.fetch = fetch_and_wait

        outcome = self._scanner(fake_sessions)(_target("a"), "pw", deadline)

        assert outcome.deadline_exceeded
        assert outcome.detail == DEADLINE_EXCEEDED
        assert session.fetched == [3, 2]

    def test_session_error_propagates(self, fake_sessions):
        fake_sessions.add("imap-a.example.com", error=MailboxConnectionError("refused"))

        with pytest.raises(MailboxConnectionError):
            self._scanner(fake_sessions)(_target("a"), "pw", Deadline(60))
