"""Shared dependencies for the OTP Relay web application."""

import threading
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from otp_relay.core.auth import verify_token
from otp_relay.core.config import get_settings
from otp_relay.repositories import InMemoryProductDirectory, ProductDirectory, load_directory
from otp_relay.services.otp_retrieval import OTPRetrievalService, build_retrieval_service

security_scheme = HTTPBearer(auto_error=False)

_lock = threading.Lock()
_directory: Optional[ProductDirectory] = None
_service: Optional[OTPRetrievalService] = None


async def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> str:
    """
    Authenticate the caller from the bearer token.

    Returns:
        User ID taken from the token subject

    Raises:
        HTTPException: If the token is missing or invalid
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = verify_token(credentials.credentials)
    return str(payload["sub"])


def get_product_directory() -> ProductDirectory:
    """
    Get the configured product directory.

    Loaded from DIRECTORY_FILE when set, otherwise an empty in-memory directory.
    """
    global _directory
    with _lock:
        if _directory is None:
            directory_file = get_settings().directory_file
            if directory_file:
                _directory = load_directory(directory_file)
            else:
                _directory = InMemoryProductDirectory()
        return _directory


def set_product_directory(directory: ProductDirectory) -> None:
    """Install a product directory; drops the cached service built on the old one."""
    global _directory, _service
    with _lock:
        _directory = directory
        _service = None


def get_retrieval_service() -> OTPRetrievalService:
    """Get or build the retrieval service."""
    global _service
    directory = get_product_directory()
    with _lock:
        if _service is None:
            _service = build_retrieval_service(directory)
        return _service


def set_retrieval_service(service: Optional[OTPRetrievalService]) -> None:
    """Install a retrieval service (tests pass one wired with fakes)."""
    global _service
    with _lock:
        _service = service


def reset_dependencies() -> None:
    """Forget the directory and service."""
    global _directory, _service
    with _lock:
        _directory = None
        _service = None
