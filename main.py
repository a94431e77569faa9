"""
============================================================================
STATUS ENGINE - MAIN APPLICATION
============================================================================
Wires every layer of the engine together and owns its lifecycle:

    Layer 1: Core & Database
        • Settings (pydantic-settings)
        • SQLAlchemy async engine + models
        • DatabaseManager + Repositories
        • Logging, Validators, Helpers

    Layer 2: Monitoring
        • ProbeClient          - shared outbound connection pool
        • HealthCheckEvaluator - probe + success predicates
        • StatusTracker        - up/down state machine
        • AlertDispatcher      - EMAIL / HTTP alerts
        • MonitorExecutor      - concurrent check passes
        • UptimeAggregator     - uptime statistics + retention cleanup
        • Scheduler            - periodic background jobs

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if needed)
3.  Open the probe connection pool and the webhook client
4.  Wire up evaluator, tracker, dispatcher, executor, aggregator
5.  Start the Scheduler
6.  Wait for SIGINT / SIGTERM

Shutdown Order (reverse)
-------------------------
    Stop scheduler → close webhook client → close probe pool →
    close DB → exit

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import signal
import sys
from typing import Optional

from config.settings import Settings, get_settings
from database.connection import DatabaseManager
from database.repositories import Repositories
from monitoring.alerts import AlertDispatcher
from monitoring.engine import MonitorExecutor
from monitoring.evaluator import HealthCheckEvaluator
from monitoring.http_client import ProbeClient
from monitoring.notifiers import EmailSender, WebhookSender
from monitoring.scheduler import Scheduler
from monitoring.status import StatusTracker
from monitoring.uptime import UptimeAggregator
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class StatusEngineApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order.  Shared resources (database engine, connection pools)
    are created here and handed to the components that use them.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- owned resources (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.probe_client: Optional[ProbeClient] = None
        self.webhook_sender: Optional[WebhookSender] = None

        # --- components ---
        self.repositories: Optional[Repositories] = None
        self.dispatcher: Optional[AlertDispatcher] = None
        self.executor: Optional[MonitorExecutor] = None
        self.aggregator: Optional[UptimeAggregator] = None
        self.scheduler: Optional[Scheduler] = None

        self._stop_event = asyncio.Event()

    # ==================================================================
    # PHASE 1: DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        """Initialize the database manager and verify connectivity."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.initialize()

            if not await self.db_manager.check_connection():
                logger.error("  ✗ Database connection check failed")
                return False

            self.repositories = Repositories.from_db(self.db_manager)
            logger.info(f"  ✓ Connected to {self.settings.database.type.value}")
            return True

        except Exception as e:
            logger.opt(exception=e).error(f"  ✗ Database init failed: {e}")
            return False

    # ==================================================================
    # PHASE 2: OUTBOUND CLIENTS
    # ==================================================================

    async def _init_clients(self) -> bool:
        """Open the probe pool and the webhook client."""
        logger.info("── Phase 2: Outbound HTTP ────────────────────────")
        try:
            self.probe_client = ProbeClient(self.settings.probe)
            await self.probe_client.start()

            self.webhook_sender = WebhookSender(self.settings.alerts)
            await self.webhook_sender.start()

            logger.info(
                f"  ✓ Probe pool open: {self.settings.probe.max_connections} connections, "
                f"{self.settings.probe.max_connections_per_host} per host"
            )
            return True

        except Exception as e:
            logger.opt(exception=e).error(f"  ✗ HTTP client init failed: {e}")
            return False

    # ==================================================================
    # PHASE 3: MONITORING
    # ==================================================================

    def _init_monitoring(self) -> None:
        """Wire up evaluator, tracker, dispatcher, executor, aggregator, scheduler."""
        logger.info("── Phase 3: Monitoring ───────────────────────────")
        repos = self.repositories

        email_sender = EmailSender(self.settings.email)
        if not email_sender.is_configured:
            logger.warning("  ⚠ Email delivery disabled, EMAIL contacts will not be notified")

        self.dispatcher = AlertDispatcher(
            contacts=repos.contacts,
            history=repos.alert_history,
            email_sender=email_sender,
            webhook_sender=self.webhook_sender,
            settings=self.settings.alerts,
        )
        self.executor = MonitorExecutor(
            db_manager=self.db_manager,
            repositories=repos,
            evaluator=HealthCheckEvaluator(self.probe_client, self.settings.probe),
            tracker=StatusTracker(repos.statuses),
            dispatcher=self.dispatcher,
            settings=self.settings.scheduler,
        )
        self.aggregator = UptimeAggregator(self.db_manager, repos)
        self.scheduler = Scheduler(
            executor=self.executor,
            aggregator=self.aggregator,
            repositories=repos,
            db_manager=self.db_manager,
            settings=self.settings.scheduler,
        )
        logger.info("  ✓ Executor, dispatcher, aggregator and scheduler created")

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any phase fails.
        """
        logger.info("=" * 74)
        logger.info(f"  STARTING {self.settings.app_name} v{self.settings.app_version} …")
        logger.info("=" * 74)
        logger.debug(f"Effective settings: {self.settings.to_dict()}")

        if not await self._init_database():
            return False
        if not await self._init_clients():
            return False
        self._init_monitoring()

        await self.scheduler.start()

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info(
            f"  Checks every {self.settings.scheduler.check_interval}s, "
            f"{self.settings.scheduler.max_concurrent_checks} concurrent"
        )
        logger.info("=" * 74)
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order.
        A failure in one step doesn't prevent the others from cleaning up.
        """
        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        steps = (
            ("Scheduler", self.scheduler.stop if self.scheduler else None),
            ("Webhook client", self.webhook_sender.close if self.webhook_sender else None),
            ("Probe pool", self.probe_client.close if self.probe_client else None),
            ("Database", self.db_manager.close if self.db_manager else None),
        )
        for name, step in steps:
            if step is None:
                continue
            try:
                await step()
                logger.info(f"  ✓ {name} closed")
            except Exception as e:
                logger.opt(exception=e).error(f"  ✗ {name} close error: {e}")

        logger.info("  ✓ SHUTDOWN COMPLETE")

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Block until a stop is requested."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: StatusEngineApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so the engine shuts down gracefully
    even when killed by the OS.
    """
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        logger.info(f"  ⚡ {sig.name} received, initiating graceful shutdown…")
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except (NotImplementedError, OSError):
            # not supported on Windows; KeyboardInterrupt still applies
            logger.debug(f"Signal handler for {sig.name} not supported here")


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main() -> int:
    """
    Async main: creates the app, starts it, and runs until shutdown.
    """
    settings = get_settings()
    setup_logging(settings.logging)

    app = StatusEngineApplication(settings)
    _install_signal_handlers(app)

    try:
        if not await app.startup():
            logger.error("  ✗ Startup failed, exiting")
            return 1
        await app.run()
        return 0
    finally:
        await app.shutdown()


# ============================================================================
# SCRIPT ENTRY POINT
# ============================================================================

def run_cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    run_cli()
