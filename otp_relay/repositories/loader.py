"""Load a product directory from YAML with environment variable support.

Example file::

    products:
      - {id: p1, slug: acme, title: Acme}
    accounts:
      - id: a1
        label: Primary inbox
        host: imap.example.com
        username: otp@example.com
        credential_ref: ${ACME_IMAP_PASSWORD_ENC}
        default_sender_filter: no-reply@acme.com
    mappings:
      - {product_id: p1, account_id: a1, weight: 100}
    grants:
      - {user_id: u1, product_id: p1, expires_at: 2030-01-01T00:00:00Z}
    totp:
      - {product_id: p1, secret_ref: ${ACME_TOTP_SECRET_ENC}, issuer: Acme}

Credential and secret references are Fernet ciphertexts, never plaintext.
"""

import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from otp_relay.core.exceptions import ConfigurationError
from otp_relay.models import (
    AccessGrant,
    Account,
    Product,
    ProductAccountMapping,
    TotpConfig,
)

from .memory import InMemoryProductDirectory

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(value: Any) -> Any:
    """
    Recursively replace ``${VAR}`` with environment values.

    Unset variables become empty strings.
    """
    if isinstance(value, str):
        for name in _ENV_PATTERN.findall(value):
            env_value = os.getenv(name)
            if env_value is None:
                logger.debug(f"Environment variable '{name}' not set, using empty string")
                env_value = ""
            value = value.replace(f"${{{name}}}", env_value)
        return value
    if isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    return value


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_directory(data: Dict[str, Any]) -> InMemoryProductDirectory:
    """
    Build an in-memory directory from a parsed document.

    Raises:
        ConfigurationError: If an entry is missing required fields
    """
    directory = InMemoryProductDirectory()
    try:
        for item in data.get("products") or []:
            directory.add_product(Product(**item))
        for item in data.get("accounts") or []:
            item = dict(item)
            item["last_used_at"] = _parse_datetime(item.get("last_used_at"))
            directory.add_account(Account(**item))
        for item in data.get("mappings") or []:
            directory.add_mapping(ProductAccountMapping(**item))
        for item in data.get("grants") or []:
            item = dict(item)
            item["expires_at"] = _parse_datetime(item.get("expires_at"))
            if "granted_at" in item:
                item["granted_at"] = _parse_datetime(item["granted_at"])
            directory.grant_access(AccessGrant(**item))
        for item in data.get("totp") or []:
            item = dict(item)
            product_id = item.pop("product_id")
            directory.set_totp_config(product_id, TotpConfig(**item))
    except (TypeError, KeyError, ValueError) as e:
        raise ConfigurationError(f"Invalid directory entry: {e}")
    return directory


def load_directory(path: Union[str, Path]) -> InMemoryProductDirectory:
    """
    Load a directory file.

    Args:
        path: YAML file path

    Returns:
        Populated InMemoryProductDirectory

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the file content is invalid
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Directory file {path} is not valid YAML: {e}")

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Directory file {path} must contain a mapping")

    directory = build_directory(substitute_env_vars(raw))
    logger.info(f"Product directory loaded from {path}")
    return directory
