"""Logging setup for simulation runs."""

import logging
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = "simrep"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    log_to_console: bool = False,
    log_to_file: bool = False,
    file_path: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Attach console and/or file handlers to the package logger.

    Existing handlers are removed first, so calling this again with new
    settings replaces the previous configuration rather than stacking.

    Args:
        log_to_console: Stream log records to stderr.
        log_to_file: Write log records to ``file_path``.
        file_path: Destination log file (required when log_to_file is True).
        level: Logging level for the package logger.

    Returns:
        The configured ``simrep`` logger.

    Raises:
        ValueError: If log_to_file is True but no file_path was given.
    """
    if log_to_file and file_path is None:
        raise ValueError("file_path must be provided when log_to_file is True")

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    if log_to_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    if log_to_file:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="w")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.setLevel(level)
    return logger
