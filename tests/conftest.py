"""Pytest configuration and common fixtures."""

import os
import secrets
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Set environment variables BEFORE any otp_relay imports
os.environ.setdefault("API_SECRET_KEY", secrets.token_urlsafe(48))
os.environ.setdefault("ENV", "testing")

from cryptography.fernet import Fernet

if not os.getenv("ENCRYPTION_KEY"):
    os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from typing import Dict, List, Optional

import pytest

from otp_relay.core.config import reset_settings
from otp_relay.core.rate_limiting import reset_otp_rate_limiter
from otp_relay.models import (
    AccessGrant,
    Account,
    MailMessage,
    Product,
    ProductAccountMapping,
)
from otp_relay.repositories import InMemoryProductDirectory
from otp_relay.utils.encryption import CredentialVault, reset_credential_vault


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Give every test fresh keys and fresh singletons."""
    monkeypatch.setenv("ENCRYPTION_KEY", Fernet.generate_key().decode())
    monkeypatch.setenv("API_SECRET_KEY", secrets.token_urlsafe(48))
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.delenv("ENCRYPTION_KEY_OLD", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("DIRECTORY_FILE", raising=False)
    monkeypatch.delenv("OUTCOME_LOG_FILE", raising=False)

    from web.dependencies import reset_dependencies

    reset_settings()
    reset_credential_vault()
    reset_otp_rate_limiter()
    reset_dependencies()
    yield
    reset_settings()
    reset_credential_vault()
    reset_otp_rate_limiter()
    reset_dependencies()


@pytest.fixture
def vault():
    """Vault using this test's ENCRYPTION_KEY."""
    return CredentialVault(os.environ["ENCRYPTION_KEY"])


class FakeMailboxSession:
    """Stands in for MailboxSession; holds messages keyed by UID."""

    def __init__(self, messages: Optional[List[MailMessage]] = None, error: Exception = None):
        self.messages = list(messages or [])
        self.error = error
        self.opened = False
        self.closed = False
        self.search_calls: List[tuple] = []
        self.fetched: List[int] = []

    def __enter__(self):
        if self.error is not None:
            raise self.error
        self.opened = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    def search(self, since, sender_filters=()):
        self.search_calls.append((since, list(sender_filters)))
        return sorted((int(m.uid) for m in self.messages), reverse=True)

    def fetch(self, uid):
        self.fetched.append(uid)
        for message in self.messages:
            if message.uid == str(uid):
                return message
        return None


class FakeSessionFactory:
    """Hands out FakeMailboxSession objects by host and records every call."""

    def __init__(self):
        self.sessions: Dict[str, FakeMailboxSession] = {}
        self.calls: List[tuple] = []

    def add(self, host: str, messages=None, error: Exception = None) -> FakeMailboxSession:
        session = FakeMailboxSession(messages, error)
        self.sessions[host] = session
        return session

    def __call__(self, host, port, username, password):
        self.calls.append((host, port, username, password))
        return self.sessions.setdefault(host, FakeMailboxSession())


@pytest.fixture
def fake_sessions():
    """Fake IMAP session factory."""
    return FakeSessionFactory()


@pytest.fixture
def make_message():
    """Build a recent MailMessage."""

    def _make(uid="1", subject="", text="", html="", sender="no-reply@acme.com", age_minutes=5):
        return MailMessage(
            uid=str(uid),
            subject=subject,
            text_body=text,
            html_body=html,
            from_address=sender,
            received_at=datetime.now(timezone.utc) - timedelta(minutes=age_minutes),
        )

    return _make


@pytest.fixture
def acme_directory(vault):
    """
    Product "acme" with two mailboxes.

    imap-a.example.com has weight 100, imap-b.example.com weight 50.
    User "u1" holds an open-ended grant.
    """
    directory = InMemoryProductDirectory()
    directory.add_product(Product(id="p-acme", slug="acme", title="Acme"))
    directory.add_account(
        Account(
            id="acc-a",
            label="Mailbox A",
            host="imap-a.example.com",
            username="a@example.com",
            credential_ref=vault.encrypt("password-a"),
        )
    )
    directory.add_account(
        Account(
            id="acc-b",
            label="Mailbox B",
            host="imap-b.example.com",
            username="b@example.com",
            credential_ref=vault.encrypt("password-b"),
            default_sender_filter="no-reply@acme.com",
        )
    )
    directory.add_mapping(ProductAccountMapping(product_id="p-acme", account_id="acc-b", weight=50))
    directory.add_mapping(ProductAccountMapping(product_id="p-acme", account_id="acc-a", weight=100))
    directory.grant_access(AccessGrant(user_id="u1", product_id="p-acme"))
    return directory
