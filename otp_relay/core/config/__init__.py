"""Configuration package."""

from .settings import OTPRelaySettings, get_settings, reset_settings

__all__ = ["OTPRelaySettings", "get_settings", "reset_settings"]
