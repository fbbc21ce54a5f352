"""
Central configuration using Pydantic BaseSettings.

Process-level knobs only: timeouts, token lifetimes, storage paths, logging.
Directory and management API coordinates are NOT here; they are entered by an
operator during first-run setup and live encrypted in the sidecar store
(see config.system_config).

Usage:
    from config.settings import get_settings

    settings = get_settings()
    print(settings.auth.session_expiration_hours)

Lazy initialization: get_settings() creates the singleton on first call.
Tests can reset via get_settings.cache_clear().
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings

_DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def _is_testing() -> bool:
    """Check if running in test mode."""
    return (
        os.getenv("TESTING", "").lower() in ("true", "1")
        or os.getenv("FLASK_ENV", "") == "testing"
    )


# =============================================================================
# Nested Settings Groups
# =============================================================================


class AuthSettings(BaseSettings):
    """Session token, second factor and password policy configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    jwt_algorithm: str = "HS256"
    session_expiration_hours: int = 24

    # Short-lived token issued between password and TOTP verification
    challenge_expiration_minutes: int = 5

    # Password policy
    password_min_length: int = 8

    # TOTP
    totp_valid_window: int = 1  # +/- one 30s step of clock drift
    mfa_issuer_name: str = "Directory Gateway"

    # Administrator derivation
    admin_groups: list[str] = ["admin", "lldap_admin"]
    reserved_admin_uid: str = "admin"


class BackendSettings(BaseSettings):
    """Timeouts and transport options for the directory and management API."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    setup_timeout_seconds: int = 5
    directory_timeout_seconds: int = 5
    management_timeout_seconds: int = 5
    management_verify_ssl: bool = True


class StorageSettings(BaseSettings):
    """On-disk locations for the master key and the sidecar document."""

    model_config = {"env_prefix": "GATEWAY_", "extra": "ignore"}

    data_dir: Path = _DEFAULT_DATA_DIR
    master_key_file: Optional[Path] = None

    @property
    def key_file(self) -> Path:
        """Symmetric key used by the secret store."""
        return self.master_key_file or self.data_dir / "master.key"

    @property
    def sidecar_file(self) -> Path:
        """JSON document holding config record, 2FA profiles and audit log."""
        return self.data_dir / "db.json"


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration."""

    model_config = {"env_prefix": "RATE_LIMIT_", "extra": "ignore"}

    default: str = "500 per minute"
    auth: str = "10 per minute"
    storage: str = "memory://"


# =============================================================================
# Root Settings
# =============================================================================


class AppSettings(BaseSettings):
    """Root application settings composing all sub-settings."""

    model_config = {"env_prefix": "", "extra": "ignore", "env_file": ".env", "env_file_encoding": "utf-8"}

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""

    # Server
    host: str = "0.0.0.0"  # nosec B104
    port: int = 3000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Nested groups (initialized separately to support env_prefix)
    auth: AuthSettings = None  # type: ignore[assignment]
    backends: BackendSettings = None  # type: ignore[assignment]
    storage: StorageSettings = None  # type: ignore[assignment]
    rate_limit: RateLimitSettings = None  # type: ignore[assignment]

    @model_validator(mode="before")
    @classmethod
    def _init_nested(cls, values):
        """Initialize nested settings from environment."""
        if values.get("auth") is None:
            values["auth"] = AuthSettings()
        if values.get("backends") is None:
            values["backends"] = BackendSettings()
        if values.get("storage") is None:
            values["storage"] = StorageSettings()
        if values.get("rate_limit") is None:
            values["rate_limit"] = RateLimitSettings()
        return values

    @model_validator(mode="after")
    def _validate_bounds(self):
        """Every backend call must be bounded; lifetimes must be positive."""
        bounded = {
            "SETUP_TIMEOUT_SECONDS": self.backends.setup_timeout_seconds,
            "DIRECTORY_TIMEOUT_SECONDS": self.backends.directory_timeout_seconds,
            "MANAGEMENT_TIMEOUT_SECONDS": self.backends.management_timeout_seconds,
            "SESSION_EXPIRATION_HOURS": self.auth.session_expiration_hours,
            "CHALLENGE_EXPIRATION_MINUTES": self.auth.challenge_expiration_minutes,
        }
        for name, value in bounded.items():
            if value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value}")

        if self.auth.password_min_length < 1:
            raise ValueError("PASSWORD_MIN_LENGTH must be at least 1")

        return self

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def testing(self) -> bool:
        return _is_testing()


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """
    Get the application settings singleton.

    Lazy-initialized on first call. Validates all env vars (fail-fast).
    Tests can reset via: get_settings.cache_clear()
    """
    return AppSettings()
