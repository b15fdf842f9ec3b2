# devbrain/core/logging_setup.py
from __future__ import annotations

import logging
import sys

from loguru import logger as trace_logger

LOG_FORMAT = "[DEVBRAIN] %(asctime)s - %(levelname)s - %(name)s - %(message)s"
TRACE_FORMAT = "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | trace={extra[trace_id]} | {message}"


def configure_logging(level: str = "INFO", *, trace_level: str | None = None) -> None:
    """Process-level logging setup for hosts embedding the service."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)

    trace_logger.remove()
    trace_logger.configure(extra={"trace_id": "-"})
    trace_logger.add(sys.stderr, level=(trace_level or level).upper(), format=TRACE_FORMAT)
