"""HTTP interface for OTP Relay."""
