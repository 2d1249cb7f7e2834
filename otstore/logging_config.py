"""
Logging setup for applications embedding otstore.

The library itself only creates module loggers; this helper is for the
host process (an OT backend, a worker, a test harness) to call once.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import StoreSettings


def setup_logging(settings: StoreSettings) -> None:
    """Configure logging based on settings.

    Args:
        settings: Store settings (log_level, log_format)
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
