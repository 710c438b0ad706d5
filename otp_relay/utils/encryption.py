"""Credential vault backed by Fernet symmetric encryption.

Mailbox passwords and TOTP secrets are stored as Fernet tokens. The vault
decrypts them on demand; plaintext values are never logged.
"""

import hashlib
import os
import threading
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from loguru import logger

from otp_relay.core.environment import Environment
from otp_relay.core.exceptions import DecryptionError

REDACTED = "[ENCRYPTED]"


def _normalize_key(key: Union[str, bytes]) -> bytes:
    """
    Normalize encryption key to bytes.

    Raises:
        ValueError: If key is neither str nor bytes
    """
    if isinstance(key, bytes):
        return key
    if isinstance(key, str):
        return key.encode()
    raise ValueError("Encryption key must be string or bytes")


class CredentialVault:
    """Encrypts and decrypts stored credentials with key rotation support."""

    def __init__(self, encryption_key: Optional[Union[str, bytes]] = None):
        """
        Initialize vault with key.

        Args:
            encryption_key: Base64-encoded Fernet key. If None, reads ENCRYPTION_KEY.

        Raises:
            ValueError: If encryption key is not provided or invalid
        """
        key = encryption_key or os.getenv("ENCRYPTION_KEY")
        if not key:
            raise ValueError(
                "ENCRYPTION_KEY must be set in environment variables. "
                'Generate one with: python -c "from cryptography.fernet import Fernet; '
                'print(Fernet.generate_key().decode())"'
            )

        try:
            cipher_key = _normalize_key(key)
            self._key_hash = hashlib.sha256(cipher_key).hexdigest()[:16]

            # New key first, previous key (if any) second
            fernet_keys = [Fernet(cipher_key)]
            old_key = os.getenv("ENCRYPTION_KEY_OLD")
            if old_key:
                try:
                    fernet_keys.append(Fernet(_normalize_key(old_key)))
                    logger.info("Old encryption key loaded for key rotation support")
                except ValueError as e:
                    logger.warning(f"Failed to load old encryption key: {e}")

            self._cipher = MultiFernet(fernet_keys)
        except ValueError as e:
            raise ValueError(f"Invalid ENCRYPTION_KEY: {e}") from e

        if Environment.is_development():
            logger.debug(f"Credential vault initialized (key hash: {self._key_hash})")
        else:
            logger.info("Credential vault initialized successfully")

    @property
    def key_hash(self) -> str:
        """Return truncated hash of current key for identification."""
        return self._key_hash

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a credential for storage.

        Args:
            plaintext: Password or secret

        Returns:
            Fernet token as text
        """
        return self._cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored credential.

        Args:
            ciphertext: Fernet token as text

        Returns:
            Plaintext credential

        Raises:
            DecryptionError: If the token is corrupt or was made with an unknown key
        """
        if not ciphertext:
            raise DecryptionError("Credential is empty")
        try:
            return self._cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error(f"Failed to decrypt credential {REDACTED}: invalid token or key")
            raise DecryptionError("Invalid encryption key or corrupted credential")
        except UnicodeDecodeError:
            logger.error(f"Decrypted credential {REDACTED} is not valid UTF-8")
            raise DecryptionError("Decrypted credential is not valid text")

    def rotate(self, ciphertext: str) -> str:
        """
        Re-encrypt a token with the current key.

        Raises:
            DecryptionError: If no configured key can decrypt the token
        """
        try:
            return self._cipher.rotate(ciphertext.encode()).decode()
        except InvalidToken:
            raise DecryptionError("Credential cannot be rotated: invalid token or key")


# Global instance
_vault_instance: Optional[CredentialVault] = None
_vault_lock = threading.Lock()


def get_credential_vault() -> CredentialVault:
    """
    Get the vault singleton built from settings.

    Returns:
        CredentialVault instance
    """
    global _vault_instance
    if _vault_instance is not None:
        return _vault_instance
    with _vault_lock:
        if _vault_instance is None:
            from otp_relay.core.config import get_settings

            key = get_settings().encryption_key
            _vault_instance = CredentialVault(key.get_secret_value() if key else None)
        return _vault_instance


def reset_credential_vault() -> None:
    """Reset the global vault instance. Thread-safe."""
    global _vault_instance
    with _vault_lock:
        _vault_instance = None
