"""Centralized logging configuration for the media pipeline."""

import os
import sys
import logging
from typing import IO, Optional

ROOT_LOGGER_NAME = "media-pipeline"

FORMATS = {
    "structured": (
        "%(asctime)s | %(name)s | %(levelname)-8s | "
        "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
    ),
    "simple": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: Optional[str] = None) -> int:
    """Map a level name (or $LOG_LEVEL when omitted) to a logging constant.

    Unknown names fall back to INFO.
    """
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """
    Configure and return a pipeline logger.

    Args:
        name: Logger name
        level: Level override; defaults to $LOG_LEVEL, then INFO
        format_type: "structured" or "simple"; $LOG_FORMAT wins when set
        stream: Handler stream (defaults to stdout); an existing handler is
            redirected to it

    Returns:
        Logger with exactly one stream handler that does not propagate
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level))

    if not logger.handlers:
        chosen = os.getenv("LOG_FORMAT", format_type).lower()
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(
            logging.Formatter(FORMATS.get(chosen, FORMATS["simple"]), DATE_FORMAT)
        )
        logger.addHandler(handler)
    elif stream is not None:
        for handler in logger.handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setStream(stream)

    logger.propagate = False
    return logger


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """Pipeline logger, or a ``media-pipeline.<component>`` child logger."""
    name = ROOT_LOGGER_NAME if not component else f"{ROOT_LOGGER_NAME}.{component}"
    return setup_logger(name)
