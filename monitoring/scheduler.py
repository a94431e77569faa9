"""
============================================================================
STATUS ENGINE - PERIODIC JOB SCHEDULER
============================================================================
Drives the engine's recurring passes from a single asyncio loop.  Each
job is a coroutine factory fired on its own interval; a job that has not
finished its previous run is skipped rather than stacked.

Built-in Jobs
-------------
1.  monitor_checks          (SCHEDULER_CHECK_INTERVAL, after initial delay)
    One pass over every ACTIVE and SILENT monitor.

2.  retry_failing_monitors  (SCHEDULER_RETRY_FAILING_INTERVAL, off by default)
    Extra passes over monitors on a failure streak.

3.  uptime_stats            (every 15 min)
    7 / 90 / 365 day statistics for every active tenant.

4.  data_cleanup            (every 24 h)
    Retention purge of check results and stale statistics.

5.  health_check            (every 30 s)
    Heartbeat with database reachability and ACTIVE monitor count.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config.settings import SchedulerSettings
from database.connection import DatabaseManager
from database.repositories import Repositories
from monitoring.engine import MonitorExecutor
from monitoring.uptime import UptimeAggregator
from utils.logger import get_logger


logger = get_logger("Scheduler")

JobFactory = Callable[[], Awaitable[Any]]


# ============================================================================
# JOB RECORD
# ============================================================================

@dataclass
class ScheduledJob:
    """
    Book-keeping for one recurring job.

    Attributes
    ----------
    name : str
        Key used for lookups and in log lines.
    interval_seconds : float
        Spacing between launches.
    coroutine_factory : JobFactory
        Called with no arguments; the returned awaitable is the job run.
    enabled : bool
        Disabled jobs stay registered but are never launched.
    running : bool
        Set while a run is in flight.
    last_run : Optional[float]
        Wall-clock time the last successful run finished.
    next_run : float
        Wall-clock time of the next launch.
    run_count, error_count, skipped_count : int
        Successful runs, failed runs, and launches dropped because the
        previous run was still going.
    """
    name: str
    interval_seconds: float
    coroutine_factory: JobFactory
    enabled: bool = True
    running: bool = False
    last_run: Optional[float] = None
    next_run: float = field(default_factory=time.time)
    run_count: int = 0
    error_count: int = 0
    skipped_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "running": self.running,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "skipped_count": self.skipped_count,
            "last_run": _iso(self.last_run),
            "next_run": _iso(self.next_run),
        }


def _iso(timestamp: Optional[float]) -> Optional[str]:
    return datetime.fromtimestamp(timestamp).isoformat() if timestamp else None


# ============================================================================
# SCHEDULER
# ============================================================================

class Scheduler:
    """
    Interval scheduler for the engine's background work.

    Usage
    -----
        scheduler = Scheduler(executor, aggregator, repositories, db_manager)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        executor: MonitorExecutor,
        aggregator: UptimeAggregator,
        repositories: Repositories,
        db_manager: DatabaseManager,
        settings: Optional[SchedulerSettings] = None,
        register_builtin: bool = True,
    ):
        self.settings = settings or SchedulerSettings()
        self.executor = executor
        self.aggregator = aggregator
        self.repos = repositories
        self.db_manager = db_manager

        self._jobs: Dict[str, ScheduledJob] = {}
        self._job_tasks: Dict[str, asyncio.Task] = {}
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None

        if register_builtin:
            self._register_builtin_jobs()

        logger.info(f"[Scheduler] {len(self._jobs)} jobs registered")

    # ------------------------------------------------------------------
    # REGISTRY
    # ------------------------------------------------------------------

    def register_job(
        self,
        name: str,
        interval_seconds: float,
        coroutine_factory: JobFactory,
        enabled: bool = True,
        initial_delay: float = 0,
    ) -> None:
        """
        Add (or replace) a recurring job.

        Parameters
        ----------
        name : str
            Unique key.
        interval_seconds : float
            Seconds between launches.
        coroutine_factory : JobFactory
            Produces one run of the job.
        enabled : bool
            Initial enabled flag.
        initial_delay : float
            Seconds before the first launch.
        """
        if name in self._jobs:
            logger.warning(f"[Scheduler] Replacing job '{name}'")

        self._jobs[name] = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            coroutine_factory=coroutine_factory,
            enabled=enabled,
            next_run=time.time() + initial_delay,
        )
        logger.debug(f"[Scheduler] Job '{name}' every {interval_seconds}s, enabled={enabled}")

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        job = self._jobs.get(name)
        if job is None:
            return False
        job.enabled = enabled
        return True

    def enable_job(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable_job(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def get_job(self, name: str) -> Optional[ScheduledJob]:
        return self._jobs.get(name)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("[Scheduler] start() called while already running")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._main_loop())
        logger.info("✓ Scheduler started")

    async def stop(self) -> None:
        """Stop launching jobs and cancel runs that are still in flight."""
        self._running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        in_flight = [task for task in self._job_tasks.values() if not task.done()]
        for task in in_flight:
            task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
            logger.info(f"[Scheduler] Cancelled {len(in_flight)} job runs in flight")
        self._job_tasks.clear()
        logger.info("✓ Scheduler stopped")

    async def _main_loop(self) -> None:
        logger.debug("[Scheduler] Loop running")
        while self._running:
            self._launch_due_jobs(time.time())
            try:
                await asyncio.sleep(self.settings.tick_interval)
            except asyncio.CancelledError:
                break
        logger.debug("[Scheduler] Loop finished")

    def _launch_due_jobs(self, now: float) -> List[str]:
        """Start every enabled job whose time has come. Returns the names started."""
        launched = []
        for job in self._jobs.values():
            if not job.enabled or now < job.next_run:
                continue
            job.next_run = now + job.interval_seconds
            if job.running:
                job.skipped_count += 1
                logger.warning(
                    f"[Scheduler] '{job.name}' is still busy from its last launch, "
                    f"skipped ({job.skipped_count} so far)"
                )
                continue
            job.running = True
            self._job_tasks[job.name] = asyncio.create_task(self._execute_job(job))
            launched.append(job.name)
        return launched

    # ------------------------------------------------------------------
    # RUNNING JOBS
    # ------------------------------------------------------------------

    async def run_job_now(self, name: str) -> bool:
        """
        Run *name* immediately and wait for it to finish.

        Returns False for an unknown job or one already in flight.
        """
        job = self._jobs.get(name)
        if job is None or job.running:
            return False
        job.running = True
        await self._execute_job(job)
        return True

    async def _execute_job(self, job: ScheduledJob) -> None:
        started = time.perf_counter()
        try:
            await job.coroutine_factory()
        except Exception as e:
            job.error_count += 1
            logger.opt(exception=e).error(
                f"[Scheduler] '{job.name}' failed after {time.perf_counter() - started:.2f}s: {e}"
            )
        else:
            job.run_count += 1
            job.last_run = time.time()
            logger.debug(
                f"[Scheduler] '{job.name}' run #{job.run_count} took "
                f"{time.perf_counter() - started:.2f}s"
            )
        finally:
            job.running = False

    def get_job_stats(self) -> List[Dict[str, Any]]:
        """Per-job counters and timings, in registration order."""
        return [job.to_dict() for job in self._jobs.values()]

    # ==================================================================
    # BUILT-IN JOBS
    # ==================================================================

    def _register_builtin_jobs(self) -> None:
        s = self.settings
        self.register_job(
            "monitor_checks", s.check_interval, self._job_monitor_checks,
            initial_delay=s.initial_delay,
        )
        self.register_job(
            "retry_failing_monitors", s.retry_failing_interval, self._job_retry_failing_monitors,
            enabled=s.retry_failing_enabled, initial_delay=s.initial_delay,
        )
        self.register_job(
            "uptime_stats", s.uptime_stats_interval, self._job_uptime_stats,
            initial_delay=s.initial_delay,
        )
        self.register_job(
            "data_cleanup", s.cleanup_interval, self._job_data_cleanup,
            initial_delay=s.initial_delay,
        )
        self.register_job("health_check", s.health_check_interval, self._job_health_check)

    async def _job_monitor_checks(self) -> None:
        await self.executor.run_all_eligible_monitors()

    async def _job_retry_failing_monitors(self) -> None:
        summary = await self.executor.run_monitors_with_failure_streak(
            self.settings.retry_failure_threshold
        )
        if summary.total:
            logger.info(f"[Retry] Re-checked {summary.total} failing monitors: {summary.to_dict()}")

    async def _job_uptime_stats(self) -> None:
        # tenants are independent; one failure must not block the rest
        for tenant_id in await self.repos.tenants.list_active_tenant_ids():
            try:
                await self.aggregator.compute_uptime_stats(tenant_id)
            except Exception as e:
                logger.opt(exception=e).error(
                    f"[Uptime] Statistics failed for tenant {tenant_id}: {e}"
                )

    async def _job_data_cleanup(self) -> None:
        await self.aggregator.cleanup_old_data(self.settings.retention_days)

    async def _job_health_check(self) -> None:
        db_ok = await self.db_manager.check_connection()
        active = await self.executor.active_monitor_count() if db_ok else 0
        logger.info(
            f"[Heartbeat] db={'OK' if db_ok else 'FAIL'} active_monitors={active} "
            f"checks_in_flight={self.executor.in_flight_checks}"
        )
