"""Logging configuration utilities for the failover reconciler."""
import logging
import os


def setup_logging() -> None:
    """Configure root logging from LOG_LEVEL and the optional LOG_FILE."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_file = os.getenv("LOG_FILE")
    logging.basicConfig(
        level=level,
        filename=log_file or None,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
