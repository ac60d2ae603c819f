"""
Logging utilities for the Harvest Intelligence Engine
"""

import os
import sys
from pathlib import Path
from loguru import logger
from typing import Optional

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None, log_file: str = "harvest_intel.log"):
    """
    Configure the engine's log sinks

    Args:
        log_level: Level used unless HARVEST_LOG_LEVEL or LOG_LEVEL is set
        log_dir: Directory for a rotating log file (defaults to HARVEST_LOG_DIR, console only if unset)
        log_file: Name of the log file
    """
    logger.remove()
    logger.configure(extra={"name": "harvest_intel"})

    level = (os.getenv("HARVEST_LOG_LEVEL") or os.getenv("LOG_LEVEL") or log_level).upper()

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    log_dir = log_dir or os.getenv("HARVEST_LOG_DIR")
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_path = os.path.join(log_dir, log_file)
        logger.add(
            log_path,
            format=FILE_FORMAT,
            level=level,
            rotation="10 MB",
            retention="30 days",
            compression="zip"
        )
        logger.info(f"Logging initialized - Level: {level}, Log file: {log_path}")
    else:
        logger.debug(f"Logging initialized - Level: {level}, console only")

    return logger


def get_logger(name: Optional[str] = None):
    """
    Get a logger bound to a component name

    Args:
        name: Component name shown in each record, usually ``__name__``

    Returns:
        Loguru logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


# Initialize logging on import
setup_logging()
