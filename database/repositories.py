"""
============================================================================
STATUS ENGINE - REPOSITORIES
============================================================================
Data access used by the monitoring engine: tenants, monitors, contacts,
check results, monitor status, alert history, uptime statistics and
cleanup job bookkeeping.

Every method opens its own transactional session unless an existing
session is passed in, which lets callers group several writes into one
atomic unit.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncGenerator, Iterable, List, Optional, Sequence

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.constants import (
    AlertType, CleanupJobStatus, CleanupJobType, MonitorState, PeriodType
)
from database.connection import DatabaseManager
from database.models import (
    AlertContact, AlertHistory, CheckResult, CleanupJob, Monitor,
    MonitorStatus, Tenant, UptimeStats
)
from exceptions import DatabaseQueryError
from utils.helpers import TimeHelper
from utils.logger import get_logger


# ============================================================================
# DATABASE REPOSITORY BASE CLASS
# ============================================================================

class BaseRepository:
    """
    Base repository class for database operations.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)

    @asynccontextmanager
    async def scope(self, session: Optional[AsyncSession] = None) -> AsyncGenerator[AsyncSession, None]:
        """
        Reuse *session* if given, otherwise open a fresh transactional one.

        Raises:
            DatabaseQueryError: wrapping any SQLAlchemy failure
        """
        try:
            if session is not None:
                yield session
            else:
                async with self.db.session() as own_session:
                    yield own_session
        except SQLAlchemyError as e:
            self.logger.error(f"{self.__class__.__name__} query failed: {e}")
            raise DatabaseQueryError(str(e), cause=e) from e

    async def add(self, instance, session: Optional[AsyncSession] = None):
        """
        Insert a new row.

        Args:
            instance: Model instance to insert
            session: Optional session to join

        Returns:
            The inserted instance with its primary key populated
        """
        async with self.scope(session) as s:
            s.add(instance)
            await s.flush()
            return instance


# ============================================================================
# TENANT REPOSITORY
# ============================================================================

class TenantRepository(BaseRepository):
    """Repository for Tenant model operations."""

    async def list_active_tenants(self) -> List[Tenant]:
        """Tenants eligible for monitoring."""
        async with self.scope() as session:
            result = await session.execute(
                select(Tenant).where(Tenant.is_active.is_(True)).order_by(Tenant.id)
            )
            return list(result.scalars().all())

    async def list_active_tenant_ids(self) -> List[int]:
        return [tenant.id for tenant in await self.list_active_tenants()]


# ============================================================================
# MONITOR REPOSITORY
# ============================================================================

class MonitorRepository(BaseRepository):
    """Repository for Monitor model operations."""

    async def list_monitors(
        self,
        tenant_ids: Iterable[int],
        states: Sequence[MonitorState],
    ) -> List[Monitor]:
        """Monitors of the given tenants whose lifecycle state is in *states*."""
        tenant_ids = list(tenant_ids)
        if not tenant_ids or not states:
            return []
        async with self.scope() as session:
            result = await session.execute(
                select(Monitor)
                .where(
                    and_(
                        Monitor.tenant_id.in_(tenant_ids),
                        Monitor.state.in_(list(states)),
                    )
                )
                .order_by(Monitor.tenant_id, Monitor.id)
            )
            return list(result.unique().scalars().all())

    async def get(self, monitor_id: int, tenant_id: int) -> Optional[Monitor]:
        async with self.scope() as session:
            result = await session.execute(
                select(Monitor).where(
                    and_(Monitor.id == monitor_id, Monitor.tenant_id == tenant_id)
                )
            )
            return result.unique().scalar_one_or_none()

    async def count_monitors(self, tenant_ids: Iterable[int], state: MonitorState) -> int:
        tenant_ids = list(tenant_ids)
        if not tenant_ids:
            return 0
        async with self.scope() as session:
            result = await session.execute(
                select(func.count(Monitor.id)).where(
                    and_(Monitor.tenant_id.in_(tenant_ids), Monitor.state == state)
                )
            )
            return result.scalar() or 0


# ============================================================================
# ALERT CONTACT REPOSITORY
# ============================================================================

class AlertContactRepository(BaseRepository):
    """Repository for AlertContact model operations."""

    async def list_active_contacts(self, tenant_id: int) -> List[AlertContact]:
        async with self.scope() as session:
            result = await session.execute(
                select(AlertContact)
                .where(
                    and_(
                        AlertContact.tenant_id == tenant_id,
                        AlertContact.is_active.is_(True),
                    )
                )
                .order_by(AlertContact.id)
            )
            return list(result.unique().scalars().all())


# ============================================================================
# CHECK RESULT REPOSITORY
# ============================================================================

class CheckResultRepository(BaseRepository):
    """Repository for CheckResult model operations."""

    async def find_in_range(
        self,
        monitor_id: int,
        tenant_id: int,
        start: datetime,
        end: datetime,
    ) -> List[CheckResult]:
        """Checks with ``start <= checked_at < end``, oldest first."""
        async with self.scope() as session:
            result = await session.execute(
                select(CheckResult)
                .where(
                    and_(
                        CheckResult.monitor_id == monitor_id,
                        CheckResult.tenant_id == tenant_id,
                        CheckResult.checked_at >= start,
                        CheckResult.checked_at < end,
                    )
                )
                .order_by(CheckResult.checked_at.asc(), CheckResult.id.asc())
            )
            return list(result.scalars().all())

    async def delete_older_than(self, tenant_id: int, cutoff: datetime) -> int:
        """Delete a tenant's checks taken before *cutoff*. Returns the row count."""
        async with self.scope() as session:
            result = await session.execute(
                delete(CheckResult).where(
                    and_(CheckResult.tenant_id == tenant_id, CheckResult.checked_at < cutoff)
                )
            )
            return result.rowcount or 0


# ============================================================================
# MONITOR STATUS REPOSITORY
# ============================================================================

class MonitorStatusRepository(BaseRepository):
    """Repository for MonitorStatus model operations."""

    async def get(
        self,
        monitor_id: int,
        tenant_id: int,
        session: Optional[AsyncSession] = None,
    ) -> Optional[MonitorStatus]:
        async with self.scope(session) as s:
            result = await s.execute(
                select(MonitorStatus).where(
                    and_(
                        MonitorStatus.monitor_id == monitor_id,
                        MonitorStatus.tenant_id == tenant_id,
                    )
                )
            )
            return result.scalar_one_or_none()

    async def list_with_failure_streak(self, tenant_id: int, threshold: int) -> List[MonitorStatus]:
        """Status rows whose consecutive failure count is at least *threshold*."""
        async with self.scope() as session:
            result = await session.execute(
                select(MonitorStatus).where(
                    and_(
                        MonitorStatus.tenant_id == tenant_id,
                        MonitorStatus.consecutive_failures >= threshold,
                    )
                )
            )
            return list(result.scalars().all())


# ============================================================================
# ALERT HISTORY REPOSITORY
# ============================================================================

class AlertHistoryRepository(BaseRepository):
    """Repository for AlertHistory model operations."""

    async def find_latest(
        self,
        monitor_id: int,
        tenant_id: int,
        alert_type: AlertType,
    ) -> Optional[AlertHistory]:
        """Most recent alert of *alert_type* sent for a monitor."""
        async with self.scope() as session:
            result = await session.execute(
                select(AlertHistory)
                .where(
                    and_(
                        AlertHistory.monitor_id == monitor_id,
                        AlertHistory.tenant_id == tenant_id,
                        AlertHistory.alert_type == alert_type,
                    )
                )
                .order_by(AlertHistory.sent_at.desc(), AlertHistory.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_for_monitor(self, monitor_id: int, tenant_id: int) -> List[AlertHistory]:
        async with self.scope() as session:
            result = await session.execute(
                select(AlertHistory)
                .where(
                    and_(AlertHistory.monitor_id == monitor_id, AlertHistory.tenant_id == tenant_id)
                )
                .order_by(AlertHistory.sent_at.asc(), AlertHistory.id.asc())
            )
            return list(result.scalars().all())


# ============================================================================
# UPTIME STATS REPOSITORY
# ============================================================================

class UptimeStatsRepository(BaseRepository):
    """Repository for UptimeStats model operations."""

    async def find_by_period(
        self,
        monitor_id: int,
        period_type: PeriodType,
        period_start: datetime,
        session: Optional[AsyncSession] = None,
    ) -> Optional[UptimeStats]:
        async with self.scope(session) as s:
            result = await s.execute(
                select(UptimeStats).where(
                    and_(
                        UptimeStats.monitor_id == monitor_id,
                        UptimeStats.period_type == period_type,
                        UptimeStats.period_start == period_start,
                    )
                )
            )
            return result.scalar_one_or_none()

    async def list_for_monitor(self, monitor_id: int, tenant_id: int) -> List[UptimeStats]:
        async with self.scope() as session:
            result = await session.execute(
                select(UptimeStats)
                .where(
                    and_(UptimeStats.monitor_id == monitor_id, UptimeStats.tenant_id == tenant_id)
                )
                .order_by(UptimeStats.period_type, UptimeStats.period_start)
            )
            return list(result.scalars().all())

    async def delete_calculated_before(self, tenant_id: int, cutoff: datetime) -> int:
        async with self.scope() as session:
            result = await session.execute(
                delete(UptimeStats).where(
                    and_(UptimeStats.tenant_id == tenant_id, UptimeStats.calculated_at < cutoff)
                )
            )
            return result.rowcount or 0


# ============================================================================
# CLEANUP JOB REPOSITORY
# ============================================================================

class CleanupJobRepository(BaseRepository):
    """Repository for CleanupJob model operations."""

    async def record_run(
        self,
        tenant_id: int,
        job_type: CleanupJobType,
        status: CleanupJobStatus,
        records_deleted: int = 0,
        execution_time_ms: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> CleanupJob:
        """Upsert the bookkeeping row for (tenant, job type)."""
        async with self.scope() as session:
            result = await session.execute(
                select(CleanupJob).where(
                    and_(CleanupJob.tenant_id == tenant_id, CleanupJob.job_type == job_type)
                )
            )
            job = result.scalar_one_or_none()
            if job is None:
                job = CleanupJob(tenant_id=tenant_id, job_type=job_type)
                session.add(job)

            job.status = status
            job.last_run_at = TimeHelper.get_utc_now()
            job.records_deleted = records_deleted
            job.execution_time_ms = execution_time_ms
            job.error_message = error_message
            await session.flush()
            return job

    async def get(self, tenant_id: int, job_type: CleanupJobType) -> Optional[CleanupJob]:
        async with self.scope() as session:
            result = await session.execute(
                select(CleanupJob).where(
                    and_(CleanupJob.tenant_id == tenant_id, CleanupJob.job_type == job_type)
                )
            )
            return result.scalar_one_or_none()


# ============================================================================
# REPOSITORY BUNDLE
# ============================================================================

@dataclass
class Repositories:
    """All repositories sharing one DatabaseManager."""
    tenants: TenantRepository
    monitors: MonitorRepository
    contacts: AlertContactRepository
    check_results: CheckResultRepository
    statuses: MonitorStatusRepository
    alert_history: AlertHistoryRepository
    uptime_stats: UptimeStatsRepository
    cleanup_jobs: CleanupJobRepository

    @classmethod
    def from_db(cls, db_manager: DatabaseManager) -> "Repositories":
        return cls(
            tenants=TenantRepository(db_manager),
            monitors=MonitorRepository(db_manager),
            contacts=AlertContactRepository(db_manager),
            check_results=CheckResultRepository(db_manager),
            statuses=MonitorStatusRepository(db_manager),
            alert_history=AlertHistoryRepository(db_manager),
            uptime_stats=UptimeStatsRepository(db_manager),
            cleanup_jobs=CleanupJobRepository(db_manager),
        )
