"""
============================================================================
STATUS ENGINE - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for tenants, monitors, check history, alerting
and uptime statistics.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from typing import Any, Dict

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Float, ForeignKey, Index, Integer,
    JSON, Numeric, String, Text, UniqueConstraint, func
)
from sqlalchemy.orm import declarative_base, relationship

from config.constants import (
    AlertType, CleanupJobStatus, CleanupJobType, ContactContentType,
    ContactType, Defaults, MonitorState, PeriodType, StatusType
)
from utils.helpers import TimeHelper


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def _enum(enum_cls, length: int = 20) -> Enum:
    """Store enums by value as plain strings."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.get_utc_now,
        server_default=func.now()
    )
    updated_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.get_utc_now,
        onupdate=TimeHelper.get_utc_now,
        server_default=func.now()
    )


# ============================================================================
# TENANT MODEL
# ============================================================================

class Tenant(Base, TimestampMixin):
    """An independent customer whose monitors are probed."""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    code = Column(String(64), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    monitors = relationship("Monitor", back_populates="tenant", cascade="all, delete-orphan")
    contacts = relationship("AlertContact", back_populates="tenant", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, code={self.code!r})>"


# ============================================================================
# MONITOR MODEL
# ============================================================================

class Monitor(Base, TimestampMixin):
    """
    A configured HTTP endpoint probed on a schedule.

    Success predicates are optional; with none configured a status in
    [200, 400) counts as up.
    """
    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(
        Integer,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    headers = Column(JSON, nullable=False, default=dict)

    state = Column(_enum(MonitorState), nullable=False, default=MonitorState.ACTIVE, index=True)

    # Success predicates
    status_code_regex = Column(String(255), nullable=True)
    response_body_regex = Column(Text, nullable=True)
    prometheus_key_regex = Column(String(255), nullable=True)
    prometheus_min_value = Column(Float, nullable=True)
    prometheus_max_value = Column(Float, nullable=True)

    alerting_threshold = Column(
        Integer,
        nullable=False,
        default=Defaults.ALERTING_THRESHOLD_SECONDS
    )

    tenant = relationship("Tenant", back_populates="monitors", lazy="joined")

    __table_args__ = (
        Index("idx_monitor_tenant_state", "tenant_id", "state"),
    )

    def __repr__(self) -> str:
        return f"<Monitor(id={self.id}, tenant_id={self.tenant_id}, url={self.url!r}, state={self.state})>"


# ============================================================================
# CHECK RESULT MODEL
# ============================================================================

class CheckResult(Base):
    """One probe of one monitor. Append-only."""
    __tablename__ = "check_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, nullable=False)
    tenant_id = Column(Integer, nullable=False)

    checked_at = Column(DateTime, nullable=False, default=TimeHelper.get_utc_now)
    status_code = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=False)
    is_up = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_check_results_monitor_time", "monitor_id", "tenant_id", "checked_at"),
        Index("idx_check_results_tenant_time", "tenant_id", "checked_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "monitor_id": self.monitor_id,
            "tenant_id": self.tenant_id,
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
            "status_code": self.status_code,
            "response_time_ms": self.response_time_ms,
            "is_up": self.is_up,
            "error_message": self.error_message,
        }


# ============================================================================
# MONITOR STATUS MODEL
# ============================================================================

class MonitorStatus(Base):
    """
    Current up/down state of a monitor. Exactly one row per monitor.

    ``down_since`` marks the first failing check of the current failure
    streak and is cleared on recovery.
    """
    __tablename__ = "monitor_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, nullable=False)
    tenant_id = Column(Integer, nullable=False)

    current_status = Column(_enum(StatusType, 10), nullable=False)
    last_checked_at = Column(DateTime, nullable=True)
    last_up_at = Column(DateTime, nullable=True)
    last_down_at = Column(DateTime, nullable=True)
    down_since = Column(DateTime, nullable=True)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    last_response_time_ms = Column(Integer, nullable=True)
    last_status_code = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("monitor_id", "tenant_id", name="uq_monitor_status_monitor_tenant"),
        Index("idx_monitor_status_failures", "tenant_id", "consecutive_failures"),
    )

    @property
    def is_up(self) -> bool:
        return self.current_status == StatusType.UP

    def __repr__(self) -> str:
        return (
            f"<MonitorStatus(monitor_id={self.monitor_id}, status={self.current_status}, "
            f"failures={self.consecutive_failures})>"
        )


# ============================================================================
# ALERT CONTACT MODEL
# ============================================================================

class AlertContact(Base, TimestampMixin):
    """A destination for tenant alerts: an email address or an HTTP endpoint."""
    __tablename__ = "alert_contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(
        Integer,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name = Column(String(255), nullable=False)
    type = Column(_enum(ContactType, 10), nullable=False)
    value = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # HTTP contacts only
    http_method = Column(String(10), nullable=True)
    http_headers = Column(JSON, nullable=True)
    http_body = Column(Text, nullable=True)
    http_content_type = Column(_enum(ContactContentType, 32), nullable=True)

    tenant = relationship("Tenant", back_populates="contacts", lazy="joined")

    __table_args__ = (
        Index("idx_alert_contact_tenant_active", "tenant_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<AlertContact(id={self.id}, type={self.type}, value={self.value!r})>"


# ============================================================================
# ALERT HISTORY MODEL
# ============================================================================

class AlertHistory(Base):
    """A notification that was actually delivered. Append-only."""
    __tablename__ = "alert_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, nullable=False)
    tenant_id = Column(Integer, nullable=False)
    alert_type = Column(_enum(AlertType), nullable=False)
    sent_at = Column(DateTime, nullable=False, default=TimeHelper.get_utc_now)
    sent_to = Column(Text, nullable=False)

    __table_args__ = (
        Index("idx_alert_history_lookup", "monitor_id", "tenant_id", "alert_type", "sent_at"),
    )


# ============================================================================
# UPTIME STATS MODEL
# ============================================================================

class UptimeStats(Base):
    """
    Aggregated statistics for one monitor over one look-back window.

    Keyed by (monitor, period_type, period_start) and overwritten on
    every aggregation cycle.
    """
    __tablename__ = "uptime_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, nullable=False)
    tenant_id = Column(Integer, nullable=False)
    period_type = Column(_enum(PeriodType, 10), nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    total_checks = Column(Integer, nullable=False, default=0)
    successful_checks = Column(Integer, nullable=False, default=0)
    uptime_percentage = Column(Numeric(5, 2), nullable=False)

    avg_response_time_ms = Column(Integer, nullable=True)
    min_response_time_ms = Column(Integer, nullable=True)
    max_response_time_ms = Column(Integer, nullable=True)
    p99_response_time_ms = Column(Integer, nullable=True)

    response_time_data = Column(Text, nullable=True)
    down_periods_data = Column(Text, nullable=True)

    calculated_at = Column(DateTime, nullable=False, default=TimeHelper.get_utc_now)

    __table_args__ = (
        UniqueConstraint("monitor_id", "period_type", "period_start", name="uq_uptime_stats_period"),
        Index("idx_uptime_stats_tenant_calculated", "tenant_id", "calculated_at"),
    )


# ============================================================================
# CLEANUP JOB MODEL
# ============================================================================

class CleanupJob(Base):
    """Last retention cleanup run per (tenant, job type)."""
    __tablename__ = "cleanup_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False)
    job_type = Column(_enum(CleanupJobType, 32), nullable=False)
    status = Column(_enum(CleanupJobStatus), nullable=False, default=CleanupJobStatus.RUNNING)
    last_run_at = Column(DateTime, nullable=False, default=TimeHelper.get_utc_now)
    records_deleted = Column(Integer, nullable=False, default=0)
    execution_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "job_type", name="uq_cleanup_job_tenant_type"),
    )
