"""
Logging setup for applications embedding nitebite.

The library only creates named loggers (nitebite.order, nitebite.security,
...). Call setup_logging() once from the application entry point.
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | int = "INFO", log_dir: str | Path | None = None) -> logging.Logger:
    """
    Configure the "nitebite" logger: console always, daily rotating file
    (7 backups) when log_dir is given.

    Calling it again only updates the level.
    """
    logger = logging.getLogger("nitebite")
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is not None:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=path / "nitebite.log",
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.info("logging initialized (level=%s)", logging.getLevelName(logger.level))
    return logger


__all__ = ("FORMAT", "DATE_FORMAT", "setup_logging")
