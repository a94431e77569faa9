"""
============================================================================
STATUS ENGINE - MONITOR EXECUTOR
============================================================================
Runs health checks and carries each result through persistence, the
status state machine and the alert policy.

Architecture
------------
MonitorExecutor
├── run_one_check()                   ← probe + record one monitor
├── record_check()                    ← persist result + status, then alert
├── run_all_eligible_monitors()       ← one pass over ACTIVE + SILENT monitors
├── run_monitors_with_failure_streak()← same pass, failing monitors only
├── active_monitor_count()            ← ACTIVE monitors of active tenants
└── _run_guarded()                    ← worker-pool slot + task-boundary guard

Every check for a given monitor runs under that monitor's lock, so status
updates are applied one at a time and in the order the checks started.
Checks of different monitors share nothing and run concurrently, bounded
by an asyncio.Semaphore.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from config.constants import MonitorState
from config.settings import SchedulerSettings
from database.connection import DatabaseManager
from database.models import CheckResult, Monitor
from database.repositories import Repositories
from monitoring.alerts import AlertDispatcher, AlertSubject, should_send_down_alert
from monitoring.evaluator import HealthCheckEvaluator, ProbeOutcome, elapsed_ms
from monitoring.status import StatusTracker, StatusTransition
from utils.helpers import KeyedLock, TimeHelper
from utils.logger import get_logger
from utils.validators import MonitorValidator


logger = get_logger("MonitorExecutor")


# ============================================================================
# PASS SUMMARY
# ============================================================================

@dataclass
class BatchSummary:
    """Outcome of one pass over a set of monitors."""
    total: int = 0
    up: int = 0
    down: int = 0
    internal_errors: int = 0
    duration_ms: int = 0
    results: List[CheckResult] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "up": self.up,
            "down": self.down,
            "internal_errors": self.internal_errors,
            "duration_ms": self.duration_ms,
        }


# ============================================================================
# EXECUTOR
# ============================================================================

class MonitorExecutor:
    """
    Executes checks for monitors and applies their consequences.

    Parameters
    ----------
    db_manager : DatabaseManager
        Used to group a check result and its status update in one
        transaction.
    repositories : Repositories
        Tenant, monitor and check result access.
    evaluator : HealthCheckEvaluator
        Performs the probe; holds no persistent state.
    tracker : StatusTracker
        Per-monitor up/down state machine.
    dispatcher : AlertDispatcher
        Alert policy and delivery.
    settings : SchedulerSettings, optional
        Supplies the concurrency bound.
    clock : Callable[[], datetime]
        Source of "now" for the alerting threshold.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        repositories: Repositories,
        evaluator: HealthCheckEvaluator,
        tracker: StatusTracker,
        dispatcher: AlertDispatcher,
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], datetime] = TimeHelper.get_utc_now,
    ):
        self.db = db_manager
        self.repos = repositories
        self.evaluator = evaluator
        self.tracker = tracker
        self.dispatcher = dispatcher
        self.settings = settings or SchedulerSettings()
        self.clock = clock

        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_checks)
        self._monitor_locks = KeyedLock()
        self._in_flight = 0

    @property
    def in_flight_checks(self) -> int:
        return self._in_flight

    # ------------------------------------------------------------------
    # SINGLE MONITOR
    # ------------------------------------------------------------------

    async def run_one_check(self, monitor: Monitor) -> CheckResult:
        """
        Probe *monitor* once and record the result.

        Returns
        -------
        CheckResult
            The persisted check result.
        """
        async with self._monitor_locks.hold(monitor.id):
            outcome = await self.evaluator.evaluate(monitor)
            return await self.record_check(monitor, outcome)

    async def record_check(self, monitor: Monitor, outcome: ProbeOutcome) -> CheckResult:
        """
        Persist *outcome* and fold it into the monitor's status atomically,
        then evaluate the alert policy.

        Callers must hold the monitor's lock.  Alerting problems are
        logged and never undo the recorded check.
        """
        async with self.db.session() as session:
            result = CheckResult(
                monitor_id=monitor.id,
                tenant_id=monitor.tenant_id,
                checked_at=outcome.checked_at,
                status_code=outcome.status_code,
                response_time_ms=outcome.response_time_ms,
                is_up=outcome.is_up,
                error_message=outcome.error_message,
            )
            session.add(result)
            # write first so SQLite takes the write lock before any read
            await session.flush()
            transition = await self.tracker.record(
                monitor.id,
                monitor.tenant_id,
                outcome.is_up,
                outcome.checked_at,
                outcome.response_time_ms,
                outcome.status_code,
                session=session,
            )

        try:
            await self._evaluate_alerts(monitor, outcome, transition)
        except Exception as e:
            logger.opt(exception=e).error(
                f"[Engine] Alert evaluation failed for monitor {monitor.id}: {e}"
            )

        return result

    async def _evaluate_alerts(
        self,
        monitor: Monitor,
        outcome: ProbeOutcome,
        transition: StatusTransition,
    ) -> None:
        # SILENT monitors are checked but never alert
        if monitor.state != MonitorState.ACTIVE:
            return

        subject = AlertSubject.from_monitor(monitor)
        if transition.is_up:
            await self.dispatcher.handle_monitor_up(subject, outcome.status_code)
            return

        threshold = MonitorValidator.effective_alerting_threshold(monitor.alerting_threshold)
        down_since = transition.down_since or transition.last_down_at
        if not should_send_down_alert(down_since, threshold, self.clock()):
            logger.debug(
                f"[Engine] Monitor {monitor.id} down for less than {threshold}s, alert held back"
            )
            return

        await self.dispatcher.handle_monitor_down(subject, outcome.status_code, outcome.response_body)

    # ------------------------------------------------------------------
    # BATCH PASSES
    # ------------------------------------------------------------------

    async def run_all_eligible_monitors(self) -> BatchSummary:
        """Check every ACTIVE and SILENT monitor of every active tenant."""
        tenant_ids = await self.repos.tenants.list_active_tenant_ids()
        monitors = await self.repos.monitors.list_monitors(tenant_ids, MonitorState.checked_states())
        return await self._run_batch(monitors, "eligible")

    async def run_monitors_with_failure_streak(self, threshold: int) -> BatchSummary:
        """Re-check only monitors with at least *threshold* consecutive failures."""
        tenant_ids = await self.repos.tenants.list_active_tenant_ids()

        failing = set()
        for tenant_id in tenant_ids:
            for status in await self.repos.statuses.list_with_failure_streak(tenant_id, threshold):
                failing.add(status.monitor_id)

        if not failing:
            return BatchSummary()

        monitors = await self.repos.monitors.list_monitors(tenant_ids, MonitorState.checked_states())
        monitors = [m for m in monitors if m.id in failing]
        return await self._run_batch(monitors, f"failure streak >= {threshold}")

    async def active_monitor_count(self) -> int:
        tenant_ids = await self.repos.tenants.list_active_tenant_ids()
        return await self.repos.monitors.count_monitors(tenant_ids, MonitorState.ACTIVE)

    async def _run_batch(self, monitors: List[Monitor], label: str) -> BatchSummary:
        summary = BatchSummary(total=len(monitors))
        if not monitors:
            logger.debug(f"[Engine] No monitors to check ({label})")
            return summary

        started = time.perf_counter()
        logger.info(f"[Engine] Checking {len(monitors)} monitors ({label})")

        tasks = [asyncio.create_task(self._run_guarded(monitor)) for monitor in monitors]
        # one failing task must not cancel the others
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for monitor, result in zip(monitors, results):
            if isinstance(result, BaseException):
                summary.internal_errors += 1
                logger.opt(exception=result).error(
                    f"[Engine] Check for monitor {monitor.id} could not be recorded: {result}"
                )
                continue
            summary.results.append(result)
            if result.is_up:
                summary.up += 1
            else:
                summary.down += 1

        summary.duration_ms = elapsed_ms(started, time.perf_counter())
        logger.info(
            f"[Engine] Pass complete ({label}): {summary.up} up, {summary.down} down, "
            f"{summary.internal_errors} errors in {summary.duration_ms}ms"
        )
        return summary

    # ------------------------------------------------------------------
    # GUARDED SINGLE CHECK
    # ------------------------------------------------------------------

    async def _run_guarded(self, monitor: Monitor) -> CheckResult:
        """
        Run one check inside a worker-pool slot.

        An unexpected exception is turned into a failed check that still
        goes through status tracking and alerting.
        """
        async with self._semaphore:
            self._in_flight += 1
            try:
                try:
                    return await self.run_one_check(monitor)
                except Exception as e:
                    logger.opt(exception=e).error(
                        f"[Engine] Exception checking monitor {monitor.id} ({monitor.url}): {e}"
                    )
                    fallback = ProbeOutcome.failure(
                        f"Monitoring engine internal error: {str(e)[:200]}",
                        checked_at=self.clock(),
                    )
                    async with self._monitor_locks.hold(monitor.id):
                        return await self.record_check(monitor, fallback)
            finally:
                self._in_flight -= 1
