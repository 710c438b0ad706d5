#!/usr/bin/env python3
"""
OTP Relay - email OTP and TOTP retrieval service.

Main entry point for the application.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError


def parse_safe_port(value: str) -> int:
    """Parse a TCP port, rejecting privileged and out-of-range values."""
    port = int(value)
    if not 1024 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"Port must be between 1024 and 65535, got {port}")
    return port


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="OTP Relay - email OTP and TOTP retrieval")
    parser.add_argument(
        "--host",
        default=os.getenv("UVICORN_HOST", "127.0.0.1"),
        help="Bind address (default: 127.0.0.1, set 0.0.0.0 to listen on all interfaces)",
    )
    parser.add_argument(
        "--port",
        type=parse_safe_port,
        default=os.getenv("UVICORN_PORT", "8000"),
        help="Port to listen on",
    )
    parser.add_argument("--env-file", default=".env", help="Path to .env file")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides LOG_LEVEL)",
    )

    args = parser.parse_args()

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)
    if args.log_level:
        os.environ["LOG_LEVEL"] = args.log_level

    from otp_relay.core.config import get_settings
    from otp_relay.core.logger import setup_structured_logging

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        sys.exit(1)

    setup_structured_logging(settings.log_level, json_format=settings.log_json)
    logger = logging.getLogger(__name__)

    import uvicorn

    from web.app import create_app

    logger.info(f"Starting OTP Relay on {args.host}:{args.port}")
    uvicorn.run(
        create_app(configure_logging=False),
        host=args.host,
        port=args.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
