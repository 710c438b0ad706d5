"""FastAPI application for OTP Relay."""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from loguru import logger
from starlette.exceptions import HTTPException

from otp_relay import __version__
from otp_relay.core.config import get_settings
from otp_relay.core.environment import Environment
from otp_relay.core.exceptions import OTPRelayError
from otp_relay.core.logger import setup_structured_logging
from otp_relay.core.rate_limiting import get_otp_rate_limiter
from otp_relay.middleware import CorrelationMiddleware
from web.exception_handlers import (
    http_exception_handler,
    otp_relay_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from web.routes import health_router, otp_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager for startup and shutdown.

    Handles:
    - Settings validation and logging setup on startup
    - Rate limiter backend selection on startup
    """
    settings = get_settings()
    if app.state.configure_logging:
        setup_structured_logging(level=settings.log_level, json_format=settings.log_json)

    logger.info(f"OTP Relay {__version__} starting up (env={settings.env})...")
    limiter = get_otp_rate_limiter()
    logger.info(f"Rate limiter backend: {'redis' if limiter.is_distributed else 'memory'}")

    yield

    logger.info("OTP Relay shutting down...")


def create_app(env_override: Optional[str] = None, configure_logging: bool = True) -> FastAPI:
    """
    Factory function to create FastAPI application instance.

    Args:
        env_override: Override environment name for testing (default: None)
        configure_logging: Install log sinks on startup (tests pass False)

    Returns:
        Configured FastAPI application instance
    """
    env = env_override if env_override is not None else Environment.current()
    _is_dev = env in ("development", "dev", "local", "testing", "test")

    app = FastAPI(
        title="OTP Relay API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if _is_dev else None,
        redoc_url="/redoc" if _is_dev else None,
        openapi_url="/openapi.json" if _is_dev else None,
        description="""
## OTP Relay

Returns short-lived authentication codes to users holding a grant on a product:

* **Email OTP** - scans the product's mailboxes in weight order and returns the
  newest trustworthy one-time code
* **TOTP** - generates the current time-based code from the product's secret

All endpoints except `/health` require a Bearer token:

```
Authorization: Bearer <your-token>
```

Errors are returned as `application/problem+json` with a stable `error` code.
    """,
        openapi_tags=[
            {"name": "otp", "description": "Email OTP and TOTP retrieval"},
            {"name": "health", "description": "Service health"},
        ],
    )
    app.state.configure_logging = configure_logging

    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(OTPRelayError, otp_relay_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(otp_router)
    app.include_router(health_router)

    return app


if __name__ == "__main__":
    import uvicorn

    # Security: Default to localhost only. Set UVICORN_HOST=0.0.0.0 to bind to all interfaces.
    host = os.getenv("UVICORN_HOST", "127.0.0.1")
    port = int(os.getenv("UVICORN_PORT", "8000"))
    uvicorn.run(create_app(), host=host, port=port)
