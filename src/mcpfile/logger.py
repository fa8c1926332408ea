"""Logging configuration for mcpfile using loguru."""

import os
import sys
from loguru import logger
from typing import Optional

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"

# Store the configured log file path so repeated setup calls stay consistent
_log_file_path: Optional[str] = None

logger.configure(extra={"name": "mcpfile"})


def setup_logger(
    log_file: Optional[str] = None,
    log_level: str = "INFO",
    rotation: str = "10 MB",
    retention: str = "7 days",
    compression: str = "zip",
    console_output: bool = True,
) -> None:
    """
    Configure loguru sinks for mcpfile.

    The library itself never installs sinks; applications (and the bundled CLI)
    call this once at startup.

    Args:
        log_file: Path to a log file. Relative paths resolve against the current
            working directory. When None, the previously configured file (if any) is reused.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        rotation: Log rotation size
        retention: How long to keep old logs
        compression: Compression format for old logs
        console_output: Whether to log to stderr
    """
    global _log_file_path

    if log_file is not None:
        if not os.path.isabs(log_file):
            log_file = os.path.abspath(log_file)
        _log_file_path = log_file
    else:
        log_file = _log_file_path

    # Remove default handler
    logger.remove()

    if console_output:
        logger.add(
            sys.stderr,
            level=log_level,
            format=_CONSOLE_FORMAT,
            colorize=True,
        )

    if log_file:
        logger.add(
            log_file,
            level=log_level,
            format=_FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            compression=compression,
            encoding="utf-8",
        )


def get_logger(name: Optional[str] = None):
    """
    Get a logger bound to a component name.

    Args:
        name: Optional component name shown in the log line

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=f"mcpfile.{name}")
    return logger
