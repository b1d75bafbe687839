from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler


PACKAGE_LOGGER = "blog_archive_scraper"


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(_level_from_string(level))
    logger.handlers = []
    logger.propagate = False

    console_handler = RichHandler(rich_tracebacks=True, show_time=False, show_level=True)
    console_handler.setLevel(_level_from_string(level))
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(_level_from_string(level))
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(file_handler)

    return logger


def _level_from_string(level: str) -> int:
    return getattr(logging, str(level).upper(), logging.INFO)
