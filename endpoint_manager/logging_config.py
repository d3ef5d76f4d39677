"""Logging configuration for the endpoint manager."""

import logging
import sys
from pathlib import Path

CONSOLE_HANDLER_NAME = "endpoint-manager-console"


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    verbose: bool = False,
    console_level: int = logging.WARNING,
) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        verbose: If True, set level to DEBUG
        console_level: Minimum level shown on stderr when not verbose
    """
    if verbose:
        level = "DEBUG"

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    # One-shot commands only show problems; see set_console_level for long-running ones
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.set_name(CONSOLE_HANDLER_NAME)
    console_handler.setLevel(logging.DEBUG if verbose else console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            logging.warning(f"Failed to create log file handler: {e}")

    # Set levels for noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


def set_console_level(level: int) -> None:
    """Lower the stderr threshold set by setup_logging.

    A threshold that is already lower (--verbose) is kept.
    """
    for handler in logging.getLogger().handlers:
        if handler.get_name() == CONSOLE_HANDLER_NAME:
            handler.setLevel(min(handler.level, level))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
