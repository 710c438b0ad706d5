"""Services: email OTP retrieval and TOTP generation."""
