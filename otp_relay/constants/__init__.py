"""Constants and default configuration values for OTP Relay.

All classes and constants can be imported directly from this package:
    from otp_relay.constants import OTP, OTPKeywords, RateLimits, TOTPDefaults
"""

from .otp import OTP, OTPKeywords, TRIVIAL_CODES
from .rate_limits import RateLimits
from .totp import TOTPDefaults

__all__ = [
    "OTP",
    "OTPKeywords",
    "TRIVIAL_CODES",
    "RateLimits",
    "TOTPDefaults",
]
