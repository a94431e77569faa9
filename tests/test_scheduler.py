import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import SchedulerSettings
from monitoring.engine import BatchSummary
from monitoring.scheduler import Scheduler


@pytest.fixture
def collaborators():
    executor = MagicMock()
    executor.run_all_eligible_monitors = AsyncMock(return_value=BatchSummary())
    executor.run_monitors_with_failure_streak = AsyncMock(return_value=BatchSummary())
    executor.active_monitor_count = AsyncMock(return_value=4)
    executor.in_flight_checks = 0

    aggregator = MagicMock()
    aggregator.compute_uptime_stats = AsyncMock(return_value=3)
    aggregator.cleanup_old_data = AsyncMock(return_value={})

    repos = MagicMock()
    repos.tenants.list_active_tenant_ids = AsyncMock(return_value=[1, 2])

    db_manager = MagicMock()
    db_manager.check_connection = AsyncMock(return_value=True)
    return executor, aggregator, repos, db_manager


def build(collaborators, **kwargs):
    executor, aggregator, repos, db_manager = collaborators
    return Scheduler(executor, aggregator, repos, db_manager, **kwargs)


def test_builtin_jobs(collaborators):
    scheduler = build(collaborators)

    names = [job["name"] for job in scheduler.get_job_stats()]
    assert names == ["monitor_checks", "retry_failing_monitors", "uptime_stats", "data_cleanup", "health_check"]
    assert scheduler.get_job("retry_failing_monitors").enabled is False
    assert scheduler.get_job("monitor_checks").enabled is True


def test_retry_job_enabled_by_settings(collaborators):
    scheduler = build(collaborators, settings=SchedulerSettings(retry_failing_enabled=True))
    assert scheduler.get_job("retry_failing_monitors").enabled is True


def test_job_stats_shape(collaborators):
    scheduler = build(collaborators, register_builtin=False)
    scheduler.register_job("noop", 10, AsyncMock())

    [stats] = scheduler.get_job_stats()
    assert set(stats) == {
        "name", "interval_seconds", "enabled", "running", "run_count",
        "error_count", "skipped_count", "last_run", "next_run",
    }
    assert stats["last_run"] is None


@pytest.mark.asyncio
async def test_run_job_now_counts_runs(collaborators):
    scheduler = build(collaborators, register_builtin=False)
    work = AsyncMock()
    scheduler.register_job("work", 60, work)

    assert await scheduler.run_job_now("work") is True
    assert await scheduler.run_job_now("work") is True
    assert await scheduler.run_job_now("missing") is False

    job = scheduler.get_job("work")
    assert job.run_count == 2
    assert job.error_count == 0
    assert job.last_run is not None
    assert work.await_count == 2


@pytest.mark.asyncio
async def test_failing_job_counts_errors(collaborators):
    scheduler = build(collaborators, register_builtin=False)
    scheduler.register_job("boom", 60, AsyncMock(side_effect=RuntimeError("boom")))

    await scheduler.run_job_now("boom")

    job = scheduler.get_job("boom")
    assert job.error_count == 1
    assert job.run_count == 0
    assert job.running is False


@pytest.mark.asyncio
async def test_running_job_is_not_started_twice(collaborators):
    scheduler = build(collaborators, register_builtin=False)
    release = asyncio.Event()
    calls = []

    async def slow():
        calls.append(1)
        await release.wait()

    scheduler.register_job("slow", 1, slow)
    now = time.time()

    assert scheduler._launch_due_jobs(now) == ["slow"]
    await asyncio.sleep(0)
    assert scheduler._launch_due_jobs(now + 5) == []
    assert await scheduler.run_job_now("slow") is False

    job = scheduler.get_job("slow")
    assert job.skipped_count == 1

    release.set()
    await scheduler._job_tasks["slow"]
    await scheduler.stop()
    assert calls == [1]
    assert job.running is False
    assert job.run_count == 1


@pytest.mark.asyncio
async def test_disabled_and_future_jobs_are_not_launched(collaborators):
    scheduler = build(collaborators, register_builtin=False)
    scheduler.register_job("later", 60, AsyncMock(), initial_delay=120)
    scheduler.register_job("off", 60, AsyncMock(), enabled=False)

    assert scheduler._launch_due_jobs(time.time()) == []
    assert scheduler.enable_job("off") is True
    assert scheduler.disable_job("unknown") is False
    assert scheduler._launch_due_jobs(time.time()) == ["off"]
    await scheduler.stop()


@pytest.mark.asyncio
async def test_builtin_jobs_drive_collaborators(collaborators):
    executor, aggregator, repos, db_manager = collaborators
    scheduler = build(collaborators, settings=SchedulerSettings(retention_days=30, retry_failure_threshold=2))

    for name in ("monitor_checks", "retry_failing_monitors", "uptime_stats", "data_cleanup", "health_check"):
        assert await scheduler.run_job_now(name) is True

    executor.run_all_eligible_monitors.assert_awaited_once()
    executor.run_monitors_with_failure_streak.assert_awaited_once_with(2)
    assert [c.args for c in aggregator.compute_uptime_stats.await_args_list] == [(1,), (2,)]
    aggregator.cleanup_old_data.assert_awaited_once_with(30)
    db_manager.check_connection.assert_awaited_once()
    executor.active_monitor_count.assert_awaited_once()


@pytest.mark.asyncio
async def test_uptime_job_continues_after_tenant_failure(collaborators):
    _, aggregator, _, _ = collaborators
    aggregator.compute_uptime_stats.side_effect = [RuntimeError("tenant 1 broke"), 3]
    scheduler = build(collaborators)

    await scheduler.run_job_now("uptime_stats")

    assert aggregator.compute_uptime_stats.await_count == 2
    assert scheduler.get_job("uptime_stats").error_count == 0


@pytest.mark.asyncio
async def test_start_and_stop(collaborators):
    scheduler = build(collaborators, register_builtin=False)

    await scheduler.start()
    assert scheduler.is_running
    await scheduler.stop()
    assert not scheduler.is_running
