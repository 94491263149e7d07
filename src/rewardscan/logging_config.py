"""
Logging configuration for rewardscan.
Call setup_logging() once at startup; modules log through logging.getLogger(__name__).
"""
from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "asyncio")


def setup_logging(level: str | int = logging.INFO, console: Console | None = None) -> logging.Logger:
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("rewardscan")
    logger.setLevel(level if isinstance(level, int) else level.upper())
    if not logger.handlers:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger
