from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.settings import LOGGING

ROOT_LOGGER_NAME = "safetysync.sync"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _ensure_root_logger() -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if not logger.handlers:
        path = Path(LOGGING.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=LOGGING.max_bytes,
            backupCount=LOGGING.backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, LOGGING.level.upper(), logging.INFO))
    return logger


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """Return the sync logger, or a child of it for ``component``."""

    root = _ensure_root_logger()
    if not component:
        return root
    return root.getChild(component)


__all__ = ["get_logger", "ROOT_LOGGER_NAME", "LOG_FORMAT"]
