"""Environment detection shared by settings, logging and the web layer."""

import os
from typing import FrozenSet


class Environment:
    """Resolve the deployment environment from the ``ENV`` variable."""

    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    TESTING = "testing"

    VALID: FrozenSet[str] = frozenset(
        {"production", "staging", "development", "dev", "testing", "test", "local"}
    )

    # Environments where verbose diagnostics are allowed
    _DEV_MODE: FrozenSet[str] = frozenset({"development", "dev", "local", "test", "testing"})

    @classmethod
    def current(cls) -> str:
        """Get the current environment name, validated and lowercased.

        Returns:
            Validated environment name. Defaults to 'production' for unknown values.
        """
        env = os.getenv("ENV", cls.PRODUCTION).lower()
        if env not in cls.VALID:
            return cls.PRODUCTION
        return env

    @classmethod
    def is_production(cls) -> bool:
        """Check if the current environment is production-like."""
        return cls.current() not in cls._DEV_MODE

    @classmethod
    def is_development(cls) -> bool:
        """Check if the current environment allows debug features."""
        return cls.current() in cls._DEV_MODE

    @classmethod
    def is_testing(cls) -> bool:
        """Check if the current environment is testing mode."""
        return cls.current() in ("testing", "test")
