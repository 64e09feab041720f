"""Logging setup shared by the API and embedding callers."""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the ``wsc_kernel`` logger hierarchy once."""
    if level is None:
        from wsc_kernel.config import get_settings
        level = get_settings().log_level

    logger = logging.getLogger("wsc_kernel")
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
