"""OTP Relay - mailbox OTP retrieval and TOTP generation service."""

__version__ = "1.0.0"
