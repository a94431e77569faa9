"""
============================================================================
STATUS ENGINE - LOGGING UTILITY
============================================================================
Loguru based logging with console, rotating file and error file sinks.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import sys
import time
from functools import wraps
from typing import Optional

from loguru import logger

from config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure logging system with multiple sinks.

    Args:
        settings: Logging section of the application settings
    """
    settings = settings or LoggingSettings()

    # Remove default loguru handler
    logger.remove()
    logger.configure(extra={"name": "status_engine"})

    log_level = settings.level.value

    if settings.console_enabled:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=settings.console_colored,
            backtrace=True,
            diagnose=False,
        )

    if settings.file_enabled:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=settings.file_rotation,
            retention=settings.file_retention,
            compression=settings.file_compression,
            serialize=settings.json_enabled,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    # Error log file (separate file for errors)
    if settings.error_file_enabled:
        settings.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression=settings.file_compression,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    logger.bind(name="Logging").info(
        f"Logging system initialized (level={log_level}, "
        f"console={settings.console_enabled}, file={settings.file_enabled})"
    )


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (usually the component name)

    Returns:
        Logger instance
    """
    return logger.bind(name=name or "status_engine")


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(func):
    """
    Decorator to log coroutine execution time at DEBUG level.

    Args:
        func: Coroutine function to decorate

    Returns:
        Decorated function
    """
    if not asyncio.iscoroutinefunction(func):
        raise TypeError(f"log_execution_time expects a coroutine function, got {func!r}")

    timing_logger = get_logger("Timing")

    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            execution_time = time.perf_counter() - start_time
            timing_logger.error(
                f"{func.__qualname__} failed after {execution_time:.4f} seconds: {e}"
            )
            raise
        execution_time = time.perf_counter() - start_time
        timing_logger.debug(
            f"{func.__qualname__} executed in {execution_time:.4f} seconds"
        )
        return result

    return async_wrapper
