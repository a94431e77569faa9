"""
Constants Module for Status Engine

Contains the enumerations, template placeholders and fixed
aggregation windows shared by the monitoring engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Tuple


class MonitorState(str, Enum):
    """Lifecycle state of a monitor."""
    ACTIVE = "ACTIVE"
    SILENT = "SILENT"
    INACTIVE = "INACTIVE"

    @classmethod
    def checked_states(cls) -> Tuple["MonitorState", ...]:
        """States whose monitors are probed by the batch scheduler."""
        return (cls.ACTIVE, cls.SILENT)


class StatusType(str, Enum):
    """Current up/down state kept in MonitorStatus."""
    UP = "up"
    DOWN = "down"


class AlertType(str, Enum):
    """Kinds of alert recorded in AlertHistory."""
    DOWN = "down"
    UP = "up"
    SLOW_RESPONSE = "slow_response"


class ContactType(str, Enum):
    """Delivery channel of an alert contact."""
    EMAIL = "EMAIL"
    HTTP = "HTTP"


class ContactContentType(str, Enum):
    """Content type used for HTTP contact request bodies."""
    APPLICATION_JSON = "application/json"
    TEXT_PLAIN = "text/plain"


class PeriodType(str, Enum):
    """Uptime statistics look-back windows."""
    SEVEN_DAYS = "7d"
    NINETY_DAYS = "90d"
    YEAR = "365d"


class CleanupJobType(str, Enum):
    """Retention cleanup job kinds."""
    CHECK_RESULTS = "check_results"
    UPTIME_STATS = "uptime_stats"


class CleanupJobStatus(str, Enum):
    """Outcome of a retention cleanup run."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================================
# UPTIME WINDOWS
# ============================================================================

@dataclass(frozen=True)
class UptimeWindow:
    """A fixed look-back window and the bucket width of its latency series."""
    period_type: PeriodType
    days: int
    bucket_minutes: int


UPTIME_WINDOWS: Final[Tuple[UptimeWindow, ...]] = (
    UptimeWindow(PeriodType.SEVEN_DAYS, 7, 60),
    UptimeWindow(PeriodType.NINETY_DAYS, 90, 360),
    UptimeWindow(PeriodType.YEAR, 365, 1440),
)

# Recent history view: 24 hours in 3 minute slots
RECENT_HISTORY_HOURS: Final[int] = 24
RECENT_HISTORY_BUCKET_MINUTES: Final[int] = 3
RECENT_HISTORY_DATA_POINTS: Final[int] = (
    RECENT_HISTORY_HOURS * 60 // RECENT_HISTORY_BUCKET_MINUTES
)

P99_PERCENTILE: Final[float] = 99.0


# ============================================================================
# MONITOR DEFAULTS
# ============================================================================

class Defaults:
    """Default values for monitors and contacts."""
    ALERTING_THRESHOLD_SECONDS: Final[int] = 30
    ALERTING_THRESHOLD_STEP: Final[int] = 15
    SUCCESS_STATUS_MIN: Final[int] = 200
    SUCCESS_STATUS_MAX: Final[int] = 400  # exclusive
    HTTP_CONTACT_METHOD: Final[str] = "GET"
    ACCEPT_HEADER: Final[str] = "*/*"


# ============================================================================
# ALERT TEMPLATES
# ============================================================================

class TemplatePlaceholders:
    """Placeholders substituted in HTTP contact URLs, headers and bodies."""
    MONITOR_NAME: Final[str] = "{{MONITOR_NAME}}"
    MONITOR_URL: Final[str] = "{{MONITOR_URL}}"
    TENANT_NAME: Final[str] = "{{TENANT_NAME}}"
    STATUS_CODE: Final[str] = "{{STATUS_CODE}}"
    RESPONSE_BODY: Final[str] = "{{RESPONSE_BODY}}"
    ALERT_TYPE: Final[str] = "{{ALERT_TYPE}}"
    TIMESTAMP: Final[str] = "{{TIMESTAMP}}"


class EmailTemplates:
    """Subject and body templates for email alerts."""
    DOWN_SUBJECT: Final[str] = "{prefix} Monitor '{name}' is DOWN - Status: {status_code}"
    DOWN_BODY: Final[str] = (
        "Monitor '{name}' is currently DOWN.\n\n"
        "URL: {url}\n"
        "Status Code: {status_code}\n"
        "Time: {timestamp}"
    )
    UP_SUBJECT: Final[str] = "{prefix} Monitor '{name}' is UP again"
    UP_BODY: Final[str] = (
        "Monitor '{name}' is now UP again.\n\n"
        "URL: {url}\n"
        "Time: {timestamp}"
    )


class SyntheticTestMonitor:
    """Synthetic monitor used for contact test notifications."""
    MONITOR_ID: Final[int] = -1
    MONITOR_NAME: Final[str] = "Test Monitor - {contact_name}"
    MONITOR_URL: Final[str] = "https://example.com/test-endpoint"
    STATUS_CODE: Final[int] = 200
    RESPONSE_BODY: Final[str] = "Test notification response body"
