"""
Process logging setup: rotating log file under the storage directory plus console.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Union

from chronotask.config import LOG_FORMAT, LOG_LEVEL, STORAGE_DIR


def setup_logging(
    log_dir: Optional[Union[str, Path]] = None, level: str = LOG_LEVEL
) -> logging.Logger:
    """Configure the `chronotask` logger and return it."""
    log_dir = Path(log_dir) if log_dir is not None else STORAGE_DIR / "logs"

    logger = logging.getLogger("chronotask")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # File handler with rotation
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "chronotask.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(logger.level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        print(f"Warning: Could not create file logger: {e}")

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
