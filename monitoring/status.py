"""
============================================================================
STATUS ENGINE - STATUS TRACKER
============================================================================
Maintains the per-monitor up/down state machine.

    first check   → consecutive_failures = 0, state = verdict
    success       → last_up_at = checked_at, failures reset, state = up
    failure       → last_down_at = checked_at, failures + 1, state = down

Every check refreshes last_checked_at, latency and status code.  A state
change is reported back to the caller; a same-state update is persisted
silently.

The tracker does read-modify-write on the status row, so callers must
serialize updates for the same monitor (MonitorExecutor holds a
per-monitor lock around the whole check).

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.constants import StatusType
from database.models import MonitorStatus
from database.repositories import MonitorStatusRepository
from utils.logger import get_logger


logger = get_logger("StatusTracker")


@dataclass(frozen=True)
class StatusTransition:
    """What a single check did to a monitor's status."""
    monitor_id: int
    tenant_id: int
    previous_status: Optional[StatusType]
    current_status: StatusType
    consecutive_failures: int
    last_down_at: Optional[datetime]
    down_since: Optional[datetime]

    @property
    def changed(self) -> bool:
        return self.previous_status != self.current_status

    @property
    def is_up(self) -> bool:
        return self.current_status == StatusType.UP


def apply_check(
    status: MonitorStatus,
    is_up: bool,
    checked_at: datetime,
    response_time_ms: Optional[int],
    status_code: Optional[int],
) -> Optional[StatusType]:
    """
    Fold one check verdict into *status* in place.

    Returns the status held before the update (None for a new row).
    """
    previous = status.current_status
    if status.consecutive_failures is None:
        status.consecutive_failures = 0

    status.last_checked_at = checked_at
    status.last_response_time_ms = response_time_ms
    status.last_status_code = status_code

    if is_up:
        status.current_status = StatusType.UP
        status.last_up_at = checked_at
        status.consecutive_failures = 0
        status.down_since = None
    else:
        if previous != StatusType.DOWN or status.down_since is None:
            status.down_since = checked_at
        status.current_status = StatusType.DOWN
        status.last_down_at = checked_at
        status.consecutive_failures += 1

    return previous


class StatusTracker:
    """Persists status transitions through MonitorStatusRepository."""

    def __init__(self, statuses: MonitorStatusRepository):
        self.statuses = statuses

    async def record(
        self,
        monitor_id: int,
        tenant_id: int,
        is_up: bool,
        checked_at: datetime,
        response_time_ms: Optional[int],
        status_code: Optional[int],
        session: Optional[AsyncSession] = None,
    ) -> StatusTransition:
        """
        Apply a check verdict to the monitor's status row.

        The row is created lazily on the first check.  Pass *session* to
        make the update part of a larger transaction.
        """
        async with self.statuses.scope(session) as s:
            status = await self.statuses.get(monitor_id, tenant_id, session=s)
            if status is None:
                status = MonitorStatus(
                    monitor_id=monitor_id,
                    tenant_id=tenant_id,
                    consecutive_failures=0,
                )
                s.add(status)

            previous = apply_check(status, is_up, checked_at, response_time_ms, status_code)
            await s.flush()

        transition = StatusTransition(
            monitor_id=monitor_id,
            tenant_id=tenant_id,
            previous_status=previous,
            current_status=status.current_status,
            consecutive_failures=status.consecutive_failures,
            last_down_at=status.last_down_at,
            down_since=status.down_since,
        )

        if transition.changed:
            logger.info(
                f"Monitor {monitor_id} status changed: "
                f"{previous.value if previous else 'none'} → {transition.current_status.value}"
            )

        return transition
