from __future__ import annotations

import logging

LOGGER_NAME = "rangeserve"


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """Configure the rangeserve namespace logger without duplicating handlers."""
    logger = logging.getLogger(LOGGER_NAME)

    # Only add a handler once (create_app may run several times per process)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(handler)
        # uvicorn configures the root logger too
        logger.propagate = False

    logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger
