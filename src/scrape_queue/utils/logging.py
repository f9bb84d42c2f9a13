"""Colored logging for the scraper loop and CLI."""

import logging
import sys
from datetime import datetime

GREEN = "\x1b[32m"
RED = "\x1b[31m"
YELLOW = "\x1b[33m"
DIM = "\x1b[2m"
BOLD = "\x1b[1m"
RESET = "\x1b[0m"


class ScraperFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: DIM,
        logging.INFO: "",
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: RED + BOLD,
    }

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%H:%M:%S")
        color = self.LEVEL_COLORS.get(record.levelno, "")
        line = f"{DIM}[{ts}]{RESET} {color}{record.getMessage()}{RESET}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def get_logger(name: str = "scrape_queue", level: str | None = None) -> logging.Logger:
    """Return the package logger, attaching the stderr handler once.

    The level is only changed when explicitly given, so modules calling
    ``get_logger()`` at import time don't undo what the CLI configured.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ScraperFormatter())
        logger.addHandler(handler)
        if level is None:
            from scrape_queue.config import settings

            level = settings.log_level
    if level is not None:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
