"""
============================================================================
STATUS ENGINE - MONITORING PACKAGE
============================================================================
The runtime monitoring core:
    • HealthCheckEvaluator - one HTTP probe + success predicates
    • StatusTracker        - per-monitor up/down state machine
    • AlertDispatcher      - deduplicated EMAIL / HTTP alert delivery
    • MonitorExecutor      - concurrent check passes
    • UptimeAggregator     - 7 / 90 / 365 day statistics, 24h history view
    • Scheduler            - periodic background job runner

File layout
-----------
monitoring/
├── __init__.py          ← this file
├── http_client.py       ← ProbeClient (shared connection pool)
├── evaluator.py         ← HealthCheckEvaluator + predicates
├── status.py            ← StatusTracker
├── notifiers.py         ← EmailSender + WebhookSender
├── alerts.py            ← AlertDispatcher
├── engine.py            ← MonitorExecutor
├── uptime.py            ← UptimeAggregator
└── scheduler.py         ← Scheduler + built-in periodic jobs

============================================================================
"""

from monitoring.http_client import ProbeClient
from monitoring.evaluator import HealthCheckEvaluator, ProbeOutcome, SuccessCriteria
from monitoring.status import StatusTracker, StatusTransition
from monitoring.notifiers import EmailSender, WebhookSender
from monitoring.alerts import AlertDispatcher, AlertSubject
from monitoring.engine import BatchSummary, MonitorExecutor
from monitoring.uptime import HistoryView, UptimeAggregator
from monitoring.scheduler import ScheduledJob, Scheduler

__all__ = [
    # Probing
    "ProbeClient",
    "HealthCheckEvaluator",
    "ProbeOutcome",
    "SuccessCriteria",

    # Status
    "StatusTracker",
    "StatusTransition",

    # Alerts
    "EmailSender",
    "WebhookSender",
    "AlertDispatcher",
    "AlertSubject",

    # Execution
    "BatchSummary",
    "MonitorExecutor",

    # Statistics
    "HistoryView",
    "UptimeAggregator",

    # Scheduling
    "ScheduledJob",
    "Scheduler",
]
