"""
============================================================================
STATUS ENGINE - UPTIME AGGREGATOR
============================================================================
Rolls raw check results into uptime statistics.

    compute_uptime_stats()  ← 7 / 90 / 365 day rows per ACTIVE monitor
    get_recent_history()    ← on-demand 24 hour view in 3 minute slots
    cleanup_old_data()      ← retention purge with per-tenant bookkeeping

The window reduction itself (percentage, latency figures, the bucketed
latency series and down intervals) is a set of pure functions shared by
the stored statistics and the 24 hour view.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import json
import math
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from config.constants import (
    P99_PERCENTILE, RECENT_HISTORY_BUCKET_MINUTES, RECENT_HISTORY_DATA_POINTS,
    RECENT_HISTORY_HOURS, UPTIME_WINDOWS, CleanupJobStatus, CleanupJobType,
    MonitorState, UptimeWindow
)
from database.connection import DatabaseManager
from database.models import CheckResult, Monitor, UptimeStats
from database.repositories import Repositories
from utils.helpers import TimeHelper
from utils.logger import get_logger, log_execution_time


logger = get_logger("UptimeAggregator")

_TWO_PLACES = Decimal("0.01")


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class LatencyPoint:
    """Maximum latency observed in one bucket."""
    timestamp: datetime
    max_response_time_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "max_response_time_ms": self.max_response_time_ms,
        }


@dataclass(frozen=True)
class DownPeriod:
    """A ``[start, end)`` span of consecutive failing checks."""
    start: datetime
    end: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass
class WindowStats:
    """Reduction of all checks in one window."""
    total_checks: int
    successful_checks: int
    uptime_percentage: Decimal
    avg_response_time_ms: Optional[int]
    min_response_time_ms: Optional[int]
    max_response_time_ms: Optional[int]
    p99_response_time_ms: Optional[int]
    series: List[LatencyPoint] = field(default_factory=list)
    down_periods: List[DownPeriod] = field(default_factory=list)


@dataclass
class HistoryView:
    """The 24 hour response-time view of one monitor."""
    monitor_id: int
    monitor_name: str
    interval_minutes: int = RECENT_HISTORY_BUCKET_MINUTES
    total_data_points: int = RECENT_HISTORY_DATA_POINTS
    uptime_percentage: Decimal = Decimal("0.00")
    total_checks: int = 0
    successful_checks: int = 0
    data_points: List[LatencyPoint] = field(default_factory=list)
    down_periods: List[DownPeriod] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitor_id": self.monitor_id,
            "monitor_name": self.monitor_name,
            "interval_minutes": self.interval_minutes,
            "total_data_points": self.total_data_points,
            "uptime_percentage": float(self.uptime_percentage),
            "total_checks": self.total_checks,
            "successful_checks": self.successful_checks,
            "data_points": [p.to_dict() for p in self.data_points],
            "down_periods": [p.to_dict() for p in self.down_periods],
        }


# ============================================================================
# PURE REDUCTIONS
# ============================================================================

def uptime_percentage(successful: int, total: int) -> Decimal:
    """successful / total * 100, two decimals, rounded half-up."""
    if total <= 0:
        return Decimal("0.00")
    ratio = Decimal(successful) * 100 / Decimal(total)
    return ratio.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def percentile(values: Sequence[int], pct: float = P99_PERCENTILE) -> Optional[int]:
    """Nearest-rank percentile: index ``ceil(pct/100 * n) - 1`` of the sorted values."""
    if not values:
        return None
    ordered = sorted(values)
    index = math.ceil(pct / 100.0 * len(ordered)) - 1
    index = min(max(index, 0), len(ordered) - 1)
    return ordered[index]


def bucket_max_latency(
    checks: Sequence[CheckResult],
    start: datetime,
    end: datetime,
    bucket_minutes: int,
) -> List[LatencyPoint]:
    """
    Split ``[start, end)`` into fixed buckets and keep each bucket's highest
    latency.  Empty buckets are left out of the series.
    """
    total_minutes = int((end - start).total_seconds() // 60)
    total_buckets = total_minutes // bucket_minutes

    maxima: Dict[int, int] = {}
    for check in checks:
        if check.response_time_ms is None:
            continue
        minutes_from_start = int((check.checked_at - start).total_seconds() // 60)
        index = minutes_from_start // bucket_minutes
        if 0 <= index < total_buckets:
            current = maxima.get(index)
            if current is None or check.response_time_ms > current:
                maxima[index] = check.response_time_ms

    return [
        LatencyPoint(start + timedelta(minutes=index * bucket_minutes), maxima[index])
        for index in sorted(maxima)
    ]


def extract_down_periods(checks: Sequence[CheckResult], window_end: datetime) -> List[DownPeriod]:
    """
    Coalesce runs of failing checks into down periods.

    A run ends at the first successful check after it; a run still open
    at the last check ends at *window_end*.
    """
    periods: List[DownPeriod] = []
    down_start: Optional[datetime] = None

    for check in sorted(checks, key=lambda c: c.checked_at):
        if not check.is_up and down_start is None:
            down_start = check.checked_at
        elif check.is_up and down_start is not None:
            periods.append(DownPeriod(down_start, check.checked_at))
            down_start = None

    if down_start is not None:
        periods.append(DownPeriod(down_start, window_end))
    return periods


def compute_window_stats(
    checks: Sequence[CheckResult],
    start: datetime,
    end: datetime,
    bucket_minutes: int,
) -> Optional[WindowStats]:
    """Reduce the checks of one window; None when there are none."""
    if not checks:
        return None

    total = len(checks)
    latencies = [c.response_time_ms for c in checks if c.is_up and c.response_time_ms is not None]
    successful = sum(1 for c in checks if c.is_up)

    return WindowStats(
        total_checks=total,
        successful_checks=successful,
        uptime_percentage=uptime_percentage(successful, total),
        avg_response_time_ms=int(sum(latencies) / len(latencies)) if latencies else None,
        min_response_time_ms=min(latencies) if latencies else None,
        max_response_time_ms=max(latencies) if latencies else None,
        p99_response_time_ms=percentile(latencies),
        series=bucket_max_latency(checks, start, end, bucket_minutes),
        down_periods=extract_down_periods(checks, end),
    )


# ============================================================================
# AGGREGATOR
# ============================================================================

class UptimeAggregator:
    """
    Maintains UptimeStats rows and serves the recent history view.

    Aggregation for one tenant never runs twice at the same time; other
    tenants proceed independently.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        repositories: Repositories,
        clock: Callable[[], datetime] = TimeHelper.get_utc_now,
    ):
        self.db = db_manager
        self.repos = repositories
        self.clock = clock
        self._tenant_locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # PERIOD STATISTICS
    # ------------------------------------------------------------------

    @log_execution_time
    async def compute_uptime_stats(self, tenant_id: int) -> int:
        """
        Recompute the 7, 90 and 365 day statistics of a tenant's ACTIVE
        monitors.

        Returns the number of rows written.
        """
        async with self._tenant_locks[tenant_id]:
            monitors = await self.repos.monitors.list_monitors([tenant_id], [MonitorState.ACTIVE])
            if not monitors:
                logger.debug(f"[Uptime] Tenant {tenant_id} has no active monitors")
                return 0

            now = self.clock()
            written = 0
            for monitor in monitors:
                try:
                    for window in UPTIME_WINDOWS:
                        if await self._compute_window(monitor, window, now):
                            written += 1
                except Exception as e:
                    logger.opt(exception=e).error(
                        f"[Uptime] Failed to calculate uptime stats for monitor {monitor.id}: {e}"
                    )

            logger.info(
                f"[Uptime] Tenant {tenant_id}: {written} stats rows updated "
                f"for {len(monitors)} monitors"
            )
            return written

    async def _compute_window(self, monitor: Monitor, window: UptimeWindow, now: datetime) -> bool:
        start = now - timedelta(days=window.days)
        checks = await self.repos.check_results.find_in_range(monitor.id, monitor.tenant_id, start, now)
        stats = compute_window_stats(checks, start, now, window.bucket_minutes)
        if stats is None:
            logger.debug(f"[Uptime] No checks for monitor {monitor.id} in {window.period_type.value}")
            return False

        await self._upsert(monitor, window, TimeHelper.start_of_day(start), now, stats)
        return True

    async def _upsert(
        self,
        monitor: Monitor,
        window: UptimeWindow,
        period_start: datetime,
        period_end: datetime,
        stats: WindowStats,
    ) -> None:
        async with self.db.session() as session:
            row = await self.repos.uptime_stats.find_by_period(
                monitor.id, window.period_type, period_start, session=session
            )
            if row is None:
                row = UptimeStats(
                    monitor_id=monitor.id,
                    tenant_id=monitor.tenant_id,
                    period_type=window.period_type,
                    period_start=period_start,
                )
                session.add(row)

            row.period_end = period_end
            row.total_checks = stats.total_checks
            row.successful_checks = stats.successful_checks
            row.uptime_percentage = stats.uptime_percentage
            row.avg_response_time_ms = stats.avg_response_time_ms
            row.min_response_time_ms = stats.min_response_time_ms
            row.max_response_time_ms = stats.max_response_time_ms
            row.p99_response_time_ms = stats.p99_response_time_ms
            row.response_time_data = json.dumps([p.to_dict() for p in stats.series])
            row.down_periods_data = json.dumps([p.to_dict() for p in stats.down_periods])
            row.calculated_at = self.clock()

    # ------------------------------------------------------------------
    # RECENT HISTORY
    # ------------------------------------------------------------------

    async def get_recent_history(self, tenant_id: int, monitor_id: int) -> HistoryView:
        """
        The last 24 hours of a monitor in 3 minute slots.

        Returns an empty view (zero counts, 0% uptime) when there are no
        checks in the window.
        """
        end = self.clock()
        start = end - timedelta(hours=RECENT_HISTORY_HOURS)

        monitor = await self.repos.monitors.get(monitor_id, tenant_id)
        view = HistoryView(
            monitor_id=monitor_id,
            monitor_name=monitor.name if monitor is not None else "Unknown",
        )

        checks = await self.repos.check_results.find_in_range(monitor_id, tenant_id, start, end)
        stats = compute_window_stats(checks, start, end, RECENT_HISTORY_BUCKET_MINUTES)
        if stats is None:
            return view

        view.uptime_percentage = stats.uptime_percentage
        view.total_checks = stats.total_checks
        view.successful_checks = stats.successful_checks
        view.data_points = stats.series
        view.down_periods = stats.down_periods
        return view

    # ------------------------------------------------------------------
    # RETENTION
    # ------------------------------------------------------------------

    @log_execution_time
    async def cleanup_old_data(self, retention_days: int) -> Dict[int, int]:
        """
        Delete check results and stale statistics older than *retention_days*
        for every active tenant.

        Returns the number of rows deleted per tenant.
        """
        cutoff = self.clock() - timedelta(days=retention_days)
        deleted: Dict[int, int] = {}

        for tenant_id in await self.repos.tenants.list_active_tenant_ids():
            deleted[tenant_id] = (
                await self._cleanup(tenant_id, CleanupJobType.CHECK_RESULTS, cutoff)
                + await self._cleanup(tenant_id, CleanupJobType.UPTIME_STATS, cutoff)
            )

        logger.info(f"[Cleanup] Removed {sum(deleted.values())} rows older than {cutoff.isoformat()}")
        return deleted

    async def _cleanup(self, tenant_id: int, job_type: CleanupJobType, cutoff: datetime) -> int:
        started = time.perf_counter()
        await self.repos.cleanup_jobs.record_run(tenant_id, job_type, CleanupJobStatus.RUNNING)
        try:
            if job_type == CleanupJobType.CHECK_RESULTS:
                count = await self.repos.check_results.delete_older_than(tenant_id, cutoff)
            else:
                count = await self.repos.uptime_stats.delete_calculated_before(tenant_id, cutoff)
        except Exception as e:
            logger.opt(exception=e).error(
                f"[Cleanup] {job_type.value} cleanup failed for tenant {tenant_id}: {e}"
            )
            await self.repos.cleanup_jobs.record_run(
                tenant_id,
                job_type,
                CleanupJobStatus.FAILED,
                execution_time_ms=int((time.perf_counter() - started) * 1000),
                error_message=str(e)[:500],
            )
            return 0

        await self.repos.cleanup_jobs.record_run(
            tenant_id,
            job_type,
            CleanupJobStatus.COMPLETED,
            records_deleted=count,
            execution_time_ms=int((time.perf_counter() - started) * 1000),
        )
        return count
