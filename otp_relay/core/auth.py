"""JWT bearer token verification."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, cast

import jwt
from fastapi import HTTPException, status
from jwt.exceptions import InvalidTokenError as JWTError
from loguru import logger

from otp_relay.core.config import get_settings

# Supported JWT algorithms whitelist
SUPPORTED_JWT_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})


def _signing_params() -> tuple:
    settings = get_settings()
    algorithm = settings.jwt_algorithm.upper()
    if algorithm not in SUPPORTED_JWT_ALGORITHMS:
        raise ValueError(f"Unsupported JWT algorithm: {algorithm}")
    if settings.api_secret_key is None:
        raise ValueError("API_SECRET_KEY is not configured")
    return settings.api_secret_key.get_secret_value(), algorithm


def create_access_token(
    user_id: str, expires_delta: Optional[timedelta] = None, extra: Optional[Dict[str, Any]] = None
) -> str:
    """
    Create a signed access token.

    Token issuing belongs to the identity provider; this helper serves local
    runs and tests.

    Args:
        user_id: Subject of the token
        expires_delta: Lifetime (default 1 hour)
        extra: Additional claims

    Returns:
        Encoded JWT
    """
    secret_key, algorithm = _signing_params()
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = dict(extra or {})
    payload.update(
        {"sub": user_id, "iat": now, "exp": now + (expires_delta or timedelta(hours=1))}
    )
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT.

    Args:
        token: JWT to verify

    Returns:
        Decoded token payload

    Raises:
        HTTPException: If token is invalid, expired or has no subject
    """
    secret_key, algorithm = _signing_params()
    try:
        payload = jwt.decode(
            token, secret_key, algorithms=[algorithm], options={"require": ["exp", "sub"]}
        )
        return cast(Dict[str, Any], payload)
    except JWTError as e:
        logger.debug(f"JWT verification failed: {e}")
        # Production: Don't expose internal error details
        if get_settings().is_production():
            detail = "Could not validate credentials"
        else:
            detail = f"Could not validate credentials: {e}"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )
