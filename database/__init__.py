"""
Database Package for Status Engine

Provides database connectivity, models, and repositories
for data persistence using SQLAlchemy with async support.
"""

from database.connection import DatabaseManager

from database.models import (
    Base,
    Tenant,
    Monitor,
    CheckResult,
    MonitorStatus,
    AlertContact,
    AlertHistory,
    UptimeStats,
    CleanupJob,
)

from database.repositories import (
    BaseRepository,
    TenantRepository,
    MonitorRepository,
    AlertContactRepository,
    CheckResultRepository,
    MonitorStatusRepository,
    AlertHistoryRepository,
    UptimeStatsRepository,
    CleanupJobRepository,
    Repositories,
)

__all__ = [
    "DatabaseManager",

    # Models
    "Base",
    "Tenant",
    "Monitor",
    "CheckResult",
    "MonitorStatus",
    "AlertContact",
    "AlertHistory",
    "UptimeStats",
    "CleanupJob",

    # Repositories
    "BaseRepository",
    "TenantRepository",
    "MonitorRepository",
    "AlertContactRepository",
    "CheckResultRepository",
    "MonitorStatusRepository",
    "AlertHistoryRepository",
    "UptimeStatsRepository",
    "CleanupJobRepository",
    "Repositories",
]
