"""Logging setup for billing workers, migrations and maintenance scripts.

Records go to a log file and, unless disabled, to stdout. The level comes
from the explicit argument, else LOG_LEVEL, else INFO. Services only ever
call ``logging.getLogger(__name__)``; configuring handlers is left to the
process entry point.
"""

import logging
import os
import sys
from pathlib import Path

from waterflow.services.config import BillingConfig

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Libraries that log every statement at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "alembic.runtime.migration")


def get_log_level(level_name: str | None = None) -> int:
    """Map a level name to its logging constant; unknown names give INFO."""
    name = level_name or os.getenv("LOG_LEVEL") or "INFO"
    return LOG_LEVEL_MAP.get(name.upper(), logging.INFO)


def setup_logging(
    log_file: str = "logs/waterflow.log",
    level_name: str | None = None,
    console: bool = True,
) -> None:
    """
    Replace the root logger's handlers with file (and stdout) output.

    Args:
        log_file: Path to log file; parent directories are created
        level_name: Level overriding LOG_LEVEL (optional)
        console: Also write to stdout
    """
    level = get_log_level(level_name)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = [logging.FileHandler(log_path)]
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def configure_logging(config: BillingConfig, console: bool = True) -> None:
    """Set up logging from a loaded BillingConfig."""
    setup_logging(config.log_file, level_name=config.log_level, console=console)


__all__ = ["configure_logging", "get_log_level", "setup_logging"]
