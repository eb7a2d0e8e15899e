"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """DiaCare health data service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DIACARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    # Loopback by default: the service holds one person's health records and
    # has no transport-level auth of its own.
    host: str = "127.0.0.1"
    port: int = 8011
    log_level: str = "info"
    allow_insecure_bind: bool = False

    # Storage
    db_path: str = "~/.diacare/diacare.db"
    # Upper bound (seconds) on how long a single store call waits for the
    # SQLite lock before failing with StorageError.
    db_timeout_seconds: float = 5.0

    # Encryption (reading notes are Fernet-encrypted at rest).
    # When no key is configured one is generated once and kept in key_path.
    encryption_key: str = ""
    key_path: str = "~/.diacare/fernet.key"

    # Accounts
    session_ttl_days: int = 30
    bcrypt_rounds: int = 12

    # Assistant context
    default_privacy_mode: Literal["strict", "standard", "explicit"] = "standard"


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
