"""Logging configuration for cvmfs-scraper."""

import logging
import sys
from pathlib import Path


LOGGER_NAME = "cvmfs_scraper"


def setup_logging(
    verbosity: int = 0,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the logger for cvmfs-scraper.

    Args:
        verbosity: -1 for quiet (WARNING+), 0 for normal (INFO), 1 for verbose (DEBUG)
        log_file: Optional path to write logs to file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    if verbosity < 0:
        console_handler.setLevel(logging.WARNING)
    elif verbosity > 0:
        console_handler.setLevel(logging.DEBUG)
    else:
        console_handler.setLevel(logging.INFO)

    # Thread name matters once servers are scraped in parallel
    if verbosity > 0:
        console_fmt = logging.Formatter("%(levelname)s [%(threadName)s]: %(message)s")
    else:
        console_fmt = logging.Formatter("%(levelname)s: %(message)s")
    console_handler.setFormatter(console_fmt)
    logger.addHandler(console_handler)

    # File handler (always DEBUG level, with timestamps)
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_fmt = logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        file_handler.setFormatter(file_fmt)
        logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the cvmfs_scraper logger instance."""
    return logging.getLogger(LOGGER_NAME)


def write_progress(message: str) -> None:
    """Write an in-place progress update to the terminal.

    Goes to stderr so the report on stdout stays clean.
    """
    sys.stderr.write(f"\r{message}")
    sys.stderr.flush()
