"""
Billboard Rental Core - Centralized Logging Configuration
=========================================================

Sets up the application logger tree with:
- RotatingFileHandler so logs never fill the disk
- Structured format with timestamp, level, module and function
- Separate handlers for console (dev) and files (prod)

Usage:
    from logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Reservation created")
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Project base directory
BASE_DIR = Path(os.path.abspath(os.path.dirname(__file__)))
DEFAULT_LOG_DIR = BASE_DIR / "logs"

ROOT_LOGGER_NAME = "billboard_rental"

# Rotation settings
MAX_BYTES = 5 * 1024 * 1024  # 5 MB
BACKUP_COUNT = 3

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _ensure_log_directory(log_dir: Path):
    """Creates the log directory if it does not exist."""
    if not log_dir.exists():
        log_dir.mkdir(parents=True, exist_ok=True)
        # Keep the empty directory tracked by git
        (log_dir / ".gitkeep").touch(exist_ok=True)


def setup_logging(environment: str = "development", log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configures logging for the whole application.

    Args:
        environment: "development" or "production"
        log_dir: Directory for the rotating files (defaults to ./logs)

    Returns:
        The configured application root logger
    """
    log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    _ensure_log_directory(log_dir)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)

    # Calling again replaces the handlers, so the latest settings win
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # === Console Handler ===
    console_handler = logging.StreamHandler()
    console_level = logging.INFO if environment == "production" else logging.DEBUG
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # === Rotating File Handler ===
    file_handler = RotatingFileHandler(
        log_dir / "billboard_rental.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # === Errors-only File Handler ===
    error_handler = RotatingFileHandler(
        log_dir / "billboard_rental_errors.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    root_logger.addHandler(error_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Returns a child of the application logger.

    Handlers are attached by setup_logging(), which the entry points
    (api.main lifespan, availability_job) call with the loaded Settings.

    Args:
        name: Module name (use __name__)

    Example:
        logger = get_logger(__name__)
        logger.info("Availability reconciled")
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
