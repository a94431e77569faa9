import json
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from config.constants import CleanupJobStatus, CleanupJobType, MonitorState, PeriodType
from monitoring.uptime import (
    DownPeriod,
    UptimeAggregator,
    bucket_max_latency,
    compute_window_stats,
    extract_down_periods,
    percentile,
    uptime_percentage,
)

from conftest import FIXED_NOW


def check(minutes, is_up, response_time_ms=100, base=FIXED_NOW):
    return SimpleNamespace(
        checked_at=base + timedelta(minutes=minutes),
        is_up=is_up,
        response_time_ms=response_time_ms,
    )


# ---------------------------------------------------------------------------
# Pure reductions
# ---------------------------------------------------------------------------

def test_uptime_percentage_rounds_half_up():
    assert uptime_percentage(7, 10) == Decimal("70.00")
    assert uptime_percentage(2, 3) == Decimal("66.67")
    assert uptime_percentage(1, 8) == Decimal("12.50")
    assert uptime_percentage(0, 0) == Decimal("0.00")


def test_p99_of_seven_values_is_the_maximum():
    assert percentile([70, 10, 30, 20, 60, 40, 50]) == 70


def test_percentile_edge_cases():
    assert percentile([]) is None
    assert percentile([5]) == 5
    assert percentile(list(range(1, 201))) == 198


def test_down_periods_end_at_next_success():
    checks = [
        check(0, True), check(1, True), check(2, False), check(3, False),
        check(4, True), check(5, False), check(6, True),
    ]
    periods = extract_down_periods(checks, FIXED_NOW + timedelta(minutes=10))

    assert periods == [
        DownPeriod(FIXED_NOW + timedelta(minutes=2), FIXED_NOW + timedelta(minutes=4)),
        DownPeriod(FIXED_NOW + timedelta(minutes=5), FIXED_NOW + timedelta(minutes=6)),
    ]


def test_trailing_down_run_closes_at_window_end():
    window_end = FIXED_NOW + timedelta(minutes=30)
    periods = extract_down_periods([check(0, True), check(1, False), check(2, False)], window_end)

    assert periods == [DownPeriod(FIXED_NOW + timedelta(minutes=1), window_end)]


def test_bucket_series_keeps_max_and_omits_empty_buckets():
    start = FIXED_NOW
    end = start + timedelta(hours=3)
    checks = [
        check(5, True, 100),
        check(50, False, 900),
        check(59, True, 300),
        check(150, True, 50),
        check(180, True, 999),  # at the window end, outside every bucket
    ]

    series = bucket_max_latency(checks, start, end, 60)

    assert [(p.timestamp, p.max_response_time_ms) for p in series] == [
        (start, 900),
        (start + timedelta(minutes=120), 50),
    ]


def test_window_stats_latency_over_successful_checks_only():
    checks = [check(i, True, (i + 1) * 10) for i in range(7)]
    checks += [check(7 + i, False, 5000) for i in range(3)]

    stats = compute_window_stats(checks, FIXED_NOW, FIXED_NOW + timedelta(hours=1), 60)

    assert stats.total_checks == 10
    assert stats.successful_checks == 7
    assert stats.uptime_percentage == Decimal("70.00")
    assert stats.min_response_time_ms == 10
    assert stats.max_response_time_ms == 70
    assert stats.avg_response_time_ms == 40
    assert stats.p99_response_time_ms == 70
    assert stats.series[0].max_response_time_ms == 5000


def test_window_stats_empty():
    assert compute_window_stats([], FIXED_NOW, FIXED_NOW + timedelta(hours=1), 60) is None


# ---------------------------------------------------------------------------
# Aggregator against the database
# ---------------------------------------------------------------------------

@pytest.fixture
def aggregator(db, repos):
    return UptimeAggregator(db, repos, clock=lambda: FIXED_NOW)


@pytest.mark.asyncio
async def test_compute_uptime_stats_writes_each_period(aggregator, repos, tenant, make_monitor, add_checks):
    monitor = await make_monitor(tenant.id)
    base = FIXED_NOW - timedelta(hours=2)
    await add_checks(
        monitor,
        [(base + timedelta(minutes=i), i < 7, (i + 1) * 10) for i in range(10)],
    )

    written = await aggregator.compute_uptime_stats(tenant.id)

    assert written == 3
    rows = {row.period_type: row for row in await repos.uptime_stats.list_for_monitor(monitor.id, tenant.id)}
    assert set(rows) == {PeriodType.SEVEN_DAYS, PeriodType.NINETY_DAYS, PeriodType.YEAR}

    week = rows[PeriodType.SEVEN_DAYS]
    assert week.total_checks == 10
    assert week.successful_checks == 7
    assert Decimal(week.uptime_percentage) == Decimal("70.00")
    assert week.p99_response_time_ms == 70
    assert week.period_start == (FIXED_NOW - timedelta(days=7)).replace(hour=0, minute=0)
    assert week.period_end == FIXED_NOW

    down_periods = json.loads(week.down_periods_data)
    assert down_periods == [{"start": (base + timedelta(minutes=7)).isoformat(), "end": FIXED_NOW.isoformat()}]
    series = json.loads(week.response_time_data)
    assert set(series[0]) == {"timestamp", "max_response_time_ms"}


@pytest.mark.asyncio
async def test_compute_uptime_stats_is_idempotent(aggregator, repos, tenant, make_monitor, add_checks):
    monitor = await make_monitor(tenant.id)
    await add_checks(monitor, [(FIXED_NOW - timedelta(minutes=m), m % 3 != 0, 20 + m) for m in range(1, 30)])

    await aggregator.compute_uptime_stats(tenant.id)
    first = {
        row.period_type: (row.id, row.total_checks, row.uptime_percentage, row.response_time_data, row.down_periods_data)
        for row in await repos.uptime_stats.list_for_monitor(monitor.id, tenant.id)
    }

    await aggregator.compute_uptime_stats(tenant.id)
    second = {
        row.period_type: (row.id, row.total_checks, row.uptime_percentage, row.response_time_data, row.down_periods_data)
        for row in await repos.uptime_stats.list_for_monitor(monitor.id, tenant.id)
    }

    assert first == second
    assert len(second) == 3


@pytest.mark.asyncio
async def test_periods_without_checks_are_skipped(aggregator, repos, tenant, make_monitor, add_checks):
    monitor = await make_monitor(tenant.id)
    await add_checks(monitor, [(FIXED_NOW - timedelta(days=30), True, 50)])

    assert await aggregator.compute_uptime_stats(tenant.id) == 2
    periods = {row.period_type for row in await repos.uptime_stats.list_for_monitor(monitor.id, tenant.id)}
    assert periods == {PeriodType.NINETY_DAYS, PeriodType.YEAR}


@pytest.mark.asyncio
async def test_only_active_monitors_are_aggregated(aggregator, repos, tenant, make_monitor, add_checks):
    silent = await make_monitor(tenant.id, state=MonitorState.SILENT)
    await add_checks(silent, [(FIXED_NOW - timedelta(minutes=5), True, 50)])

    assert await aggregator.compute_uptime_stats(tenant.id) == 0
    assert await repos.uptime_stats.list_for_monitor(silent.id, tenant.id) == []


@pytest.mark.asyncio
async def test_recent_history_view(aggregator, tenant, make_monitor, add_checks):
    monitor = await make_monitor(tenant.id, name="Checkout")
    start = FIXED_NOW - timedelta(hours=24)
    await add_checks(
        monitor,
        [
            (start + timedelta(minutes=1), True, 120),
            (start + timedelta(minutes=2), False, 400),
            (start + timedelta(minutes=4), True, 80),
            (FIXED_NOW - timedelta(minutes=1), False, 30),
        ],
    )

    view = await aggregator.get_recent_history(tenant.id, monitor.id)

    assert view.monitor_name == "Checkout"
    assert view.interval_minutes == 3
    assert view.total_data_points == 480
    assert view.total_checks == 4
    assert view.successful_checks == 2
    assert view.uptime_percentage == Decimal("50.00")
    assert [(p.timestamp, p.max_response_time_ms) for p in view.data_points] == [
        (start, 400),
        (start + timedelta(minutes=3), 80),
        (start + timedelta(minutes=1437), 30),
    ]
    assert view.down_periods == [
        DownPeriod(start + timedelta(minutes=2), start + timedelta(minutes=4)),
        DownPeriod(FIXED_NOW - timedelta(minutes=1), FIXED_NOW),
    ]


@pytest.mark.asyncio
async def test_recent_history_empty(aggregator, tenant, make_monitor):
    monitor = await make_monitor(tenant.id)

    view = await aggregator.get_recent_history(tenant.id, monitor.id)

    assert view.total_checks == 0
    assert view.successful_checks == 0
    assert view.uptime_percentage == Decimal("0.00")
    assert view.data_points == []
    assert view.down_periods == []
    assert view.to_dict()["uptime_percentage"] == 0.0


@pytest.mark.asyncio
async def test_recent_history_unknown_monitor(aggregator, tenant):
    view = await aggregator.get_recent_history(tenant.id, 999)

    assert view.monitor_name == "Unknown"
    assert view.total_checks == 0


@pytest.mark.asyncio
async def test_cleanup_old_data(aggregator, repos, tenant, make_monitor, add_checks):
    monitor = await make_monitor(tenant.id)
    await add_checks(
        monitor,
        [
            (FIXED_NOW - timedelta(days=120), True, 10),
            (FIXED_NOW - timedelta(days=91), False, 10),
            (FIXED_NOW - timedelta(days=10), True, 10),
        ],
    )

    deleted = await aggregator.cleanup_old_data(90)

    assert deleted == {tenant.id: 2}
    remaining = await repos.check_results.find_in_range(
        monitor.id, tenant.id, FIXED_NOW - timedelta(days=365), FIXED_NOW
    )
    assert len(remaining) == 1

    job = await repos.cleanup_jobs.get(tenant.id, CleanupJobType.CHECK_RESULTS)
    assert job.status == CleanupJobStatus.COMPLETED
    assert job.records_deleted == 2
    stats_job = await repos.cleanup_jobs.get(tenant.id, CleanupJobType.UPTIME_STATS)
    assert stats_job.status == CleanupJobStatus.COMPLETED
