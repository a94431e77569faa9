"""
============================================================================
STATUS ENGINE - HELPERS UTILITY
============================================================================
Time helpers, text truncation and per-key asyncio locks.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, DefaultDict, Hashable, Optional


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time and date manipulation utilities.

    All timestamps stored by the engine are naive datetimes in UTC.
    """

    @staticmethod
    def get_utc_now() -> datetime:
        """Get current UTC datetime (naive)."""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def start_of_day(dt: datetime) -> datetime:
        """Truncate *dt* to midnight of the same day."""
        return dt.replace(hour=0, minute=0, second=0, microsecond=0)

    @staticmethod
    def format_datetime(dt: Optional[datetime], fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
        """
        Format datetime to string.

        Args:
            dt: Datetime to format
            fmt: Format string

        Returns:
            Formatted string, or an empty string for ``None``
        """
        if dt is None:
            return ""
        return dt.strftime(fmt)

    @staticmethod
    def whole_seconds_between(earlier: datetime, later: datetime) -> int:
        """Elapsed whole seconds from *earlier* to *later* (truncated)."""
        return int((later - earlier).total_seconds())


# ============================================================================
# STRING UTILITIES
# ============================================================================

class StringHelper:
    """String manipulation utilities."""

    @staticmethod
    def truncate(text: Optional[str], max_length: int = 100, suffix: str = "...") -> str:
        """
        Truncate text to maximum length.

        Args:
            text: Text to truncate
            max_length: Maximum length
            suffix: Suffix to add if truncated

        Returns:
            Truncated text
        """
        if not text:
            return ""
        if len(text) <= max_length:
            return text
        return text[:max_length] + suffix


# ============================================================================
# CONCURRENCY UTILITIES
# ============================================================================

class KeyedLock:
    """
    One asyncio.Lock per key.

    asyncio.Lock wakes waiters in FIFO order, so work for the same key
    runs in the order it asked for the lock.
    """

    def __init__(self) -> None:
        self._locks: DefaultDict[Hashable, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._waiters: DefaultDict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        self._waiters[key] += 1
        try:
            async with self._locks[key]:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # nobody queued on this key any more
                del self._waiters[key]
                del self._locks[key]

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
