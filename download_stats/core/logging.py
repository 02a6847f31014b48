import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from download_stats.core.settings import settings


_LOGGER_NAME = "download_stats"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the package logger once; later calls return it unchanged."""
    logger = logging.getLogger(_LOGGER_NAME)
    level_name = (level or settings.log_level).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Avoid adding handlers twice if reloaded
    if logger.handlers:
        return logger

    fmt = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(fmt)
    logger.addHandler(console_handler)

    target = log_file or settings.log_file
    if target:
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            target, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)
        logger.info("Logging to %s", target)

    return logger
