"""
Logging for the algo_engine logger tree: console plus optional file, with configured
credentials masked out of every record.
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MASK = "***"


class RedactSecrets(logging.Filter):
    """Replaces known secret values (API keys, bot tokens) in the rendered message."""

    def __init__(self, secrets: Iterable[str]):
        super().__init__()
        # short values would mask ordinary words
        self.secrets = sorted({s for s in secrets if s and len(s) >= 6}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self.secrets:
            masked = masked.replace(secret, MASK)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    log_file: Optional[str] = None,
    secrets: Iterable[str] = (),
) -> logging.Logger:
    """
    Configure the `algo_engine` logger. Calling it again replaces the handlers.
    Pass broker and Telegram credentials as `secrets` so they never reach a handler.
    """
    logger = logging.getLogger("algo_engine")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    # on the handlers, since logger filters skip records from child loggers
    redact = RedactSecrets(secrets)
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_dir and log_file:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(directory / log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(redact)
        logger.addHandler(handler)
    return logger
