from pathlib import Path

import pytest
from pydantic import ValidationError

from config.settings import (
    DatabaseSettings,
    Environment,
    HttpProbeSettings,
    LogLevel,
    SchedulerSettings,
    Settings,
)


def test_scheduler_defaults():
    settings = SchedulerSettings()
    assert settings.check_interval == 60
    assert settings.retention_days == 90
    assert settings.retry_failing_enabled is False
    assert settings.retry_failure_threshold == 3


def test_sections_read_their_env_prefix(monkeypatch):
    monkeypatch.setenv("SCHEDULER_CHECK_INTERVAL", "120")
    monkeypatch.setenv("PROBE_MAX_CONNECTIONS", "40")
    monkeypatch.setenv("EMAIL_ENABLED", "true")

    settings = Settings()

    assert settings.scheduler.check_interval == 120
    assert settings.probe.max_connections == 40
    assert settings.email.is_configured


def test_out_of_range_values_fail_fast():
    with pytest.raises(ValidationError):
        SchedulerSettings(check_interval=1)
    with pytest.raises(ValidationError):
        HttpProbeSettings(max_connections=10, max_connections_per_host=20)


def test_sqlite_path_gets_db_suffix(tmp_path):
    settings = DatabaseSettings(sqlite_path=tmp_path / "engine")
    assert settings.sqlite_path == Path(tmp_path / "engine.db")
    assert settings.url == f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}"


def test_postgres_url():
    settings = DatabaseSettings(type="postgresql", user="engine", password="pw", host="db", name="status")
    assert settings.url == "postgresql+asyncpg://engine:pw@db:5432/status"


def test_environment_adjustments():
    production = Settings(environment=Environment.PRODUCTION, debug=True)
    assert production.debug is False

    development = Settings(environment=Environment.DEVELOPMENT, debug=True)
    assert development.logging.level == LogLevel.DEBUG


def test_to_dict_drops_secrets():
    data = Settings().to_dict()
    assert "password" not in data["database"]
    assert "smtp_password" not in data["email"]
    assert data["scheduler"]["max_concurrent_checks"] == 50
