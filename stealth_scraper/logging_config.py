"""Logging configuration using loguru"""

import sys
from pathlib import Path
from typing import Optional, TextIO

from loguru import logger


def setup_logging(
    verbose: bool = False, log_file: Optional[Path] = None, stream: Optional[TextIO] = None
) -> None:
    """
    Configure loguru for production logging.

    Every record carries a ``request_id`` extra; requests bind their own id
    with ``logger.contextualize`` and everything else logs as ``-``.

    Args:
        verbose: Enable debug-level logging
        log_file: Optional file path for log output
        stream: Console stream (stdout unless the caller needs it for data)
    """
    # Remove default handler
    logger.remove()
    logger.configure(extra={"request_id": "-"})

    # Console handler with colors
    log_level = "DEBUG" if verbose else "INFO"
    logger.add(
        stream or sys.stdout,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
            "<cyan>{extra[request_id]}</cyan> | <level>{message}</level>"
        ),
        level=log_level,
        colorize=True,
    )

    # File handler with rotation
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[request_id]} | "
                "{name}:{function}:{line} | {message}"
            ),
            level="DEBUG",
            rotation="100 MB",
            retention="30 days",
            compression="zip",
            enqueue=True,  # Thread-safe
        )
        logger.info(f"Logging to file: {log_file}")
