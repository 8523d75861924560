"""
Application configuration models and helpers.

Centralizes settings management so the session controller, the profile sync
engine and the admin tooling share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class FirebaseSettings(BaseSettings):
    """Configuration required for talking to Firebase Auth and Firestore."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    api_key: str = Field(..., validation_alias="FIREBASE_API_KEY")
    project_id: str = Field(..., validation_alias="FIREBASE_PROJECT_ID")
    auth_domain: Optional[str] = Field(
        None,
        validation_alias="FIREBASE_AUTH_DOMAIN",
        description="Hosting domain of the auth provider; informational only.",
    )
    identity_toolkit_url: str = Field(
        "https://identitytoolkit.googleapis.com/v1",
        validation_alias="FIREBASE_IDENTITY_TOOLKIT_URL",
    )
    secure_token_url: str = Field(
        "https://securetoken.googleapis.com/v1",
        validation_alias="FIREBASE_SECURE_TOKEN_URL",
    )
    firestore_url: str = Field(
        "https://firestore.googleapis.com/v1",
        validation_alias="FIRESTORE_URL",
    )
    database_id: str = Field("(default)", validation_alias="FIRESTORE_DATABASE_ID")


class SessionSettings(BaseSettings):
    """Token lifecycle, retry and local cache tuning."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    token_refresh_interval_seconds: float = Field(
        45 * 60, validation_alias="TOKEN_REFRESH_INTERVAL"
    )
    token_expiry_threshold_seconds: float = Field(
        5 * 60, validation_alias="TOKEN_EXPIRY_THRESHOLD"
    )
    max_retries: int = Field(3, validation_alias="PROFILE_MAX_RETRIES")
    retry_initial_delay_seconds: float = Field(
        1.0, validation_alias="PROFILE_RETRY_INITIAL_DELAY"
    )
    fetch_dedup_wait_seconds: float = Field(
        0.5,
        validation_alias="PROFILE_FETCH_DEDUP_WAIT",
        description="How long an overlapping profile fetch waits for the first one.",
    )
    redirect_source: str = Field("nextstep-nexn", validation_alias="REDIRECT_SOURCE_TAG")
    local_storage_path: str = Field(
        "data/local_storage.db", validation_alias="LOCAL_STORAGE_PATH"
    )
    request_timeout_seconds: float = Field(10.0, validation_alias="HTTP_TIMEOUT")
    login_rate_limit_seconds: int = Field(30 * 60, validation_alias="LOGIN_RATE_LIMIT")

    @field_validator("max_retries")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        """A retry budget below one would never run the operation."""
        if value < 1:
            raise ValueError("PROFILE_MAX_RETRIES must be at least 1")
        return value


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting the stored bearer token."
        ),
    )


class AppSettings(BaseSettings):
    """Root settings object for the session client."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    debug: bool = Field(
        False,
        validation_alias="APP_DEBUG",
        description="When true, log at DEBUG regardless of APP_LOG_LEVEL.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    firebase: FirebaseSettings = Field(default_factory=FirebaseSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "FirebaseSettings",
    "SecuritySettings",
    "SessionSettings",
    "get_settings",
]
