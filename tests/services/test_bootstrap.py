"""Tests for fleet_services.bootstrap.

The kernel hooks are replaced with recorders: re-initializing the real
engine would dispose the session-wide test database.
"""

import pytest

from fleet_config import parse_config
from fleet_services import bootstrap


@pytest.fixture
def calls(monkeypatch):
    recorded = []
    monkeypatch.setattr(
        bootstrap, "configure_logging",
        lambda **kw: recorded.append(("logging", kw)),
    )
    monkeypatch.setattr(
        bootstrap, "init_engine_from_url",
        lambda url, **kw: recorded.append(("engine", url, kw)),
    )
    monkeypatch.setattr(
        bootstrap, "register_immutability_listeners",
        lambda: recorded.append(("listeners",)),
    )
    monkeypatch.setattr(bootstrap, "create_tables", lambda: recorded.append(("tables",)))
    return recorded


class TestStart:

    def test_applies_database_and_logging_sections(self, calls):
        config = parse_config({
            "config_id": "fleet-north",
            "version": 2,
            "database": {
                "url": "postgresql://billing@db/fleet",
                "echo": True,
                "pool_size": 8,
                "max_overflow": 2,
            },
            "logging": {"level": "warning"},
        })

        applied = bootstrap.start(config)

        assert applied is config
        assert calls == [
            ("logging", {"level": "WARNING"}),
            ("engine", "postgresql://billing@db/fleet",
             {"echo": True, "pool_size": 8, "max_overflow": 2}),
            ("listeners",),
        ]

    def test_create_schema(self, calls):
        bootstrap.start(parse_config({"config_id": "local", "version": 1}), create_schema=True)

        assert calls[-1] == ("tables",)

    def test_loads_active_config_when_none_given(self, calls, tmp_path):
        path = tmp_path / "billing.yaml"
        path.write_text("config_id: from-file\nversion: 4\n")

        applied = bootstrap.start(config_path=path)

        assert applied.config_id == "from-file"
        assert calls[1][1] == "sqlite+pysqlite:///:memory:"
