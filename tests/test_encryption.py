"""Tests for the credential vault."""

import pytest
from cryptography.fernet import Fernet

from otp_relay.core.exceptions import DecryptionError
from otp_relay.utils.encryption import (
    CredentialVault,
    get_credential_vault,
    reset_credential_vault,
)


class TestCredentialVault:
    """Tests for CredentialVault."""

    def test_round_trip(self, vault):
        token = vault.encrypt("imap-password")
        assert token != "imap-password"
        assert vault.decrypt(token) == "imap-password"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        with pytest.raises(ValueError, match="ENCRYPTION_KEY must be set"):
            CredentialVault()

    def test_invalid_key(self):
        with pytest.raises(ValueError, match="Invalid ENCRYPTION_KEY"):
            CredentialVault("not-a-key")

    def test_wrong_key_raises_decryption_error(self, vault):
        other = CredentialVault(Fernet.generate_key().decode())
        token = other.encrypt("secret")

        with pytest.raises(DecryptionError):
            vault.decrypt(token)

    def test_empty_ciphertext(self, vault):
        with pytest.raises(DecryptionError):
            vault.decrypt("")

    def test_old_key_still_decrypts(self, monkeypatch):
        old_key = Fernet.generate_key().decode()
        token = CredentialVault(old_key).encrypt("legacy")
        monkeypatch.setenv("ENCRYPTION_KEY_OLD", old_key)

        new_key = Fernet.generate_key().decode()
        rotated_vault = CredentialVault(new_key)

        assert rotated_vault.decrypt(token) == "legacy"
        rotated = rotated_vault.rotate(token)
        monkeypatch.delenv("ENCRYPTION_KEY_OLD")
        assert CredentialVault(new_key).decrypt(rotated) == "legacy"

    def test_key_hash_is_stable(self):
        key = Fernet.generate_key().decode()
        assert CredentialVault(key).key_hash == CredentialVault(key).key_hash
        assert len(CredentialVault(key).key_hash) == 16


class TestVaultSingleton:
    def test_singleton_uses_settings_key(self, monkeypatch):
        vault = get_credential_vault()
        assert vault is get_credential_vault()

        token = vault.encrypt("x")
        reset_credential_vault()
        assert get_credential_vault().decrypt(token) == "x"
