"""Configuration loading for the billing core.

Loads settings from .env file and environment variables with sensible defaults.
Validates values and provides clear error messages.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass
class BillingConfig:
    """Runtime configuration of the billing core."""

    database_url: str = "sqlite:///./waterflow.db"
    """SQLAlchemy database URL (default: local SQLite)"""

    log_level: str = "INFO"
    """Root log level name"""

    log_file: str = "logs/waterflow.log"
    """Path to log file"""

    ingest_max_attempts: int = 3
    """Attempts per reading submission when storage reports a transient conflict"""

    ingest_retry_backoff: float = 0.05
    """Seconds to wait before retry N is N * backoff"""

    sqlite_busy_timeout: float = 30.0
    """Seconds a SQLite writer waits for the database lock"""


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def load_config(env_file: str = ".env") -> BillingConfig:
    """
    Load configuration from .env file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (DATABASE_URL, LOG_LEVEL, INGEST_MAX_ATTEMPTS, etc.)
    2. .env file in project root
    3. Default values

    Returns:
        BillingConfig with all settings

    Raises:
        ValueError: If a value is missing its expected type or out of range
    """
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)

    defaults = BillingConfig()
    config = BillingConfig(
        database_url=os.getenv("DATABASE_URL") or defaults.database_url,
        log_level=(os.getenv("LOG_LEVEL") or defaults.log_level).upper(),
        log_file=os.getenv("LOG_FILE") or defaults.log_file,
        ingest_max_attempts=_int_env("INGEST_MAX_ATTEMPTS", defaults.ingest_max_attempts),
        ingest_retry_backoff=_float_env("INGEST_RETRY_BACKOFF", defaults.ingest_retry_backoff),
        sqlite_busy_timeout=_float_env("SQLITE_BUSY_TIMEOUT", defaults.sqlite_busy_timeout),
    )

    if config.ingest_max_attempts < 1:
        raise ValueError("INGEST_MAX_ATTEMPTS must be at least 1")
    if config.ingest_retry_backoff < 0:
        raise ValueError("INGEST_RETRY_BACKOFF cannot be negative")
    if config.sqlite_busy_timeout <= 0:
        raise ValueError("SQLITE_BUSY_TIMEOUT must be positive")

    return config


__all__ = ["BillingConfig", "load_config"]
