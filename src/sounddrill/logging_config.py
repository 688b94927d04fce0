"""Logging configuration for the practice engine."""
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from sounddrill.config import settings


def setup_logging(first_message: str = "", level: Optional[str] = None) -> None:
    """Set up logging configuration."""
    if level is None:
        level = settings.logging.level

    # Create logs directory if it doesn't exist
    if settings.logging.file:
        log_dir = Path(settings.logging.file).parent
        log_dir.mkdir(parents=True, exist_ok=True)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(settings.logging.format)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler if log file is specified
    if settings.logging.file:
        file_handler = logging.handlers.RotatingFileHandler(
            settings.logging.file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Set logging levels for third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("gtts").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    if first_message:
        logging.info(first_message)
    logging.info(f"Logging configured with level: {level}")
