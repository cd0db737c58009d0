from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Settings read from the environment (or a .env file next to the process)."""

    # Bounded wait for a per-aggregate lock; nothing blocks forever
    LOCK_TIMEOUT_SECONDS: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "5.0"))

    DEFAULT_SEARCH_RADIUS_METERS: float = float(os.getenv("DEFAULT_SEARCH_RADIUS_METERS", "5000"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE") or None


def setup_logging(level: Optional[str] = None, fmt: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s") -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if Config.LOG_FILE:
        handlers.append(logging.FileHandler(Config.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, level or Config.LOG_LEVEL, logging.INFO),
        format=fmt,
        handlers=handlers,
    )
