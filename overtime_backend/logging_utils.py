"""
Overtime Counter - Logging Framework

Provides centralized logging with:
- Console output for development
- File logging with rotation for production
- Performance timing utilities
"""

import logging
import sys
import time
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Union

# Default log directory (created lazily by setup_logging)
LOG_DIR = Path("logs")
LOG_FILE_NAME = "overtime_counter.log"


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_dir: str = "logs",
    max_bytes: int = 5_000_000,  # 5MB
    backup_count: int = 3
) -> None:
    """
    Configure global logging settings.

    Args:
        level: Minimum log level (int or name such as "DEBUG")
        log_to_file: Whether to write logs to file
        log_dir: Directory for log files
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
    """
    global LOG_DIR
    level = _coerce_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%H:%M:%S'
    ))
    root_logger.addHandler(console_handler)

    if log_to_file:
        LOG_DIR = Path(log_dir)
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_DIR / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(file_handler)


# ==============================================================================
# PERFORMANCE TIMING
# ==============================================================================

def timed(func: Callable) -> Callable:
    """
    Decorator to log function execution time.

    Usage:
        @timed
        def my_function():
            ...
    """
    @wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        logger = logging.getLogger(func.__module__)
        start = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = time.perf_counter() - start
        logger.info(f"{func.__name__} completed in {elapsed:.2f}s")
        return result
    return wrapper
