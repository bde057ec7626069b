"""Process-wide logging setup for the pipeline service."""

from __future__ import annotations

import logging
from typing import Iterable


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_HANDLER_MARK = "_lecture_pipeline_handler"


def configure_logging(level: str | int = logging.INFO, *, handlers: Iterable[logging.Handler] | None = None) -> logging.Logger:
    """Configure the root logger once; repeated calls only adjust the level."""

    logger = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    if any(getattr(h, _HANDLER_MARK, False) for h in logger.handlers):
        return logger

    if handlers is None:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        handlers = [stream_handler]

    for handler in handlers:
        setattr(handler, _HANDLER_MARK, True)
        logger.addHandler(handler)

    return logger


__all__ = ["configure_logging", "DEFAULT_LOG_FORMAT"]
