"""TOTP generation."""

from .generator import TOTPGenerator, clean_secret, generate_random_secret, validate_secret

__all__ = [
    "TOTPGenerator",
    "clean_secret",
    "generate_random_secret",
    "validate_secret",
]
