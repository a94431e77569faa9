"""
Shared pytest fixtures: a file-backed SQLite database per test plus
factories for tenants, monitors and alert contacts.
"""

from datetime import datetime

import pytest
import pytest_asyncio

from config.constants import ContactType, MonitorState
from database.connection import DatabaseManager
from database.models import AlertContact, CheckResult, Monitor, Tenant
from database.repositories import Repositories


FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest_asyncio.fixture
async def db(tmp_path):
    manager = DatabaseManager(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def repos(db):
    return Repositories.from_db(db)


@pytest_asyncio.fixture
async def tenant(db):
    async with db.session() as session:
        row = Tenant(name="Acme Corp", code="acme", is_active=True)
        session.add(row)
        await session.flush()
    return row


@pytest.fixture
def make_monitor(db, repos):
    """Insert a monitor and return it reloaded with its tenant."""

    async def _make(tenant_id, **overrides):
        values = {
            "name": "API",
            "url": "https://api.example.com/health",
            "headers": {},
            "state": MonitorState.ACTIVE,
            "alerting_threshold": 30,
        }
        values.update(overrides)
        async with db.session() as session:
            monitor = Monitor(tenant_id=tenant_id, **values)
            session.add(monitor)
            await session.flush()
            monitor_id = monitor.id
        return await repos.monitors.get(monitor_id, tenant_id)

    return _make


@pytest.fixture
def make_contact(db):
    async def _make(tenant_id, contact_type=ContactType.HTTP, value="https://hooks.example.com/alert", **overrides):
        values = {"name": "Ops", "is_active": True}
        values.update(overrides)
        async with db.session() as session:
            contact = AlertContact(tenant_id=tenant_id, type=contact_type, value=value, **values)
            session.add(contact)
            await session.flush()
        return contact

    return _make


@pytest.fixture
def add_checks(db):
    """Insert check results from ``(checked_at, is_up, response_time_ms)`` tuples."""

    async def _add(monitor, rows):
        async with db.session() as session:
            for checked_at, is_up, response_time_ms in rows:
                session.add(
                    CheckResult(
                        monitor_id=monitor.id,
                        tenant_id=monitor.tenant_id,
                        checked_at=checked_at,
                        status_code=200 if is_up else 500,
                        response_time_ms=response_time_ms,
                        is_up=is_up,
                    )
                )

    return _add
