"""Application-wide logging helpers with rotating files."""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: str, log_dir: Path, *, level: int = logging.INFO) -> logging.Logger:
    log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    # ABEL_LOG_LEVEL=DEBUG overrides the caller's level
    env_level = logging.getLevelName(os.environ.get("ABEL_LOG_LEVEL", "").upper())
    if isinstance(env_level, int):
        level = env_level

    logger.setLevel(level)
    log_path = log_dir / f"{name}.log"
    handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
