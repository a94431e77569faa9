"""
Configuration Package for Status Engine

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the engine
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    HttpProbeSettings,
    SchedulerSettings,
    EmailSettings,
    AlertSettings,
    LoggingSettings,
    get_settings,
)

from config.constants import (
    MonitorState,
    StatusType,
    AlertType,
    ContactType,
    ContactContentType,
    PeriodType,
    CleanupJobType,
    CleanupJobStatus,
    UptimeWindow,
    UPTIME_WINDOWS,
    Defaults,
    TemplatePlaceholders,
    EmailTemplates,
    SyntheticTestMonitor,
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "HttpProbeSettings",
    "SchedulerSettings",
    "EmailSettings",
    "AlertSettings",
    "LoggingSettings",
    "get_settings",

    # Constants
    "MonitorState",
    "StatusType",
    "AlertType",
    "ContactType",
    "ContactContentType",
    "PeriodType",
    "CleanupJobType",
    "CleanupJobStatus",
    "UptimeWindow",
    "UPTIME_WINDOWS",
    "Defaults",
    "TemplatePlaceholders",
    "EmailTemplates",
    "SyntheticTestMonitor",
]
