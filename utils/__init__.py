"""
Utilities Package for Status Engine

- Logging configuration (loguru)
- Time, string and locking helpers
- Contact and monitor validation
"""

from utils.logger import get_logger, setup_logging, log_execution_time
from utils.helpers import TimeHelper, StringHelper, KeyedLock
from utils.validators import URLValidator, ContactValidator, MonitorValidator

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "log_execution_time",

    # Helpers
    "TimeHelper",
    "StringHelper",
    "KeyedLock",

    # Validators
    "URLValidator",
    "ContactValidator",
    "MonitorValidator",
]
