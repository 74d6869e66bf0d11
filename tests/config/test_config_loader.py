"""
Tests for fleet_config.

Covers:
- Packaged defaults load and parse
- Required keys and value validation
- Checksum stability and sensitivity
- Path resolution (explicit, environment, default) and caching
- FLEET_CONFIG_TRACE on load
"""

import textwrap

import pytest

import fleet_config
from fleet_config import (
    CONFIG_ENV_VAR,
    BillingConfig,
    clear_config_cache,
    compute_checksum,
    get_active_config,
    parse_config,
    reload_config,
)
from fleet_config.loader import load_config

MINIMAL = {"config_id": "fleet-test", "version": 3}


@pytest.fixture(autouse=True)
def _fresh_cache(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


def _write(tmp_path, body, name="billing.yaml"):
    path = tmp_path / name
    path.write_text(textwrap.dedent(body))
    return path


class TestParse:

    def test_minimal_document_takes_defaults(self):
        config = parse_config(MINIMAL)

        assert isinstance(config, BillingConfig)
        assert config.tenant_id == "default"
        assert config.lease.base_rate_name == "LEASE_BASE"
        assert config.statements.require_continuity is True
        assert config.statements.max_period_days == 62
        assert config.batch.max_workers == 4
        assert config.logging.level == "INFO"

    @pytest.mark.parametrize("missing", ["config_id", "version"])
    def test_required_keys(self, missing):
        data = dict(MINIMAL)
        del data[missing]
        with pytest.raises(KeyError):
            parse_config(data)

    @pytest.mark.parametrize("data", [
        {**MINIMAL, "version": "3"},
        {**MINIMAL, "version": True},
        {**MINIMAL, "batch": {"max_workers": 0}},
        {**MINIMAL, "statements": {"max_period_days": -1}},
        {**MINIMAL, "statements": {"require_continuity": "yes"}},
        {**MINIMAL, "lease": {"base_rate_name": "  "}},
        {**MINIMAL, "logging": {"level": "LOUD"}},
        {**MINIMAL, "preview": ["sample_size", 5]},
    ])
    def test_malformed_values(self, data):
        with pytest.raises(ValueError):
            parse_config(data)

    def test_log_level_case_insensitive(self):
        assert parse_config({**MINIMAL, "logging": {"level": "debug"}}).logging.level == "DEBUG"

    def test_config_is_frozen(self):
        config = parse_config(MINIMAL)
        with pytest.raises(AttributeError):
            config.version = 4


class TestChecksum:

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_any_change_detected(self):
        changed = {**MINIMAL, "batch": {"max_workers": 8}}
        assert parse_config(MINIMAL).checksum != parse_config(changed).checksum


class TestLoading:

    def test_packaged_defaults(self):
        config = get_active_config()
        assert config.config_id == "fleet-billing-default"
        assert config.statements.require_continuity is True

    def test_yaml_file(self, tmp_path):
        path = _write(tmp_path, """
            config_id: fleet-north
            version: 7
            tenant_id: north
            lease:
              base_rate_name: NORTH_LEASE
            statements:
              require_continuity: false
        """)

        config = load_config(path)

        assert config.tenant_id == "north"
        assert config.lease.base_rate_name == "NORTH_LEASE"
        assert config.lease.mileage_rate_name == "LEASE_MILEAGE"
        assert config.statements.require_continuity is False

    def test_non_mapping_root_rejected(self, tmp_path):
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ValueError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_environment_variable(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "config_id: from-env\nversion: 2\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert get_active_config().config_id == "from-env"

    def test_cached_until_reloaded(self, tmp_path):
        path = _write(tmp_path, "config_id: first\nversion: 1\n")
        assert get_active_config(path).config_id == "first"

        path.write_text("config_id: second\nversion: 2\n")
        assert get_active_config(path).config_id == "first"
        assert reload_config(path).config_id == "second"
        assert get_active_config(path).config_id == "second"

    def test_load_traced(self, tmp_path, captured_logs):
        path = _write(tmp_path, "config_id: traced\nversion: 5\n")

        config = get_active_config(path)

        [trace] = [r for r in captured_logs() if r.get("trace_type") == "FLEET_CONFIG_TRACE"]
        assert trace["config_id"] == "traced"
        assert trace["config_version"] == 5
        assert trace["checksum"] == config.checksum
        assert trace["logger"] == "fleet_kernel.config"

    def test_cache_hit_not_traced_again(self, tmp_path, captured_logs):
        path = _write(tmp_path, "config_id: traced\nversion: 5\n")
        get_active_config(path)
        get_active_config(path)

        traces = [r for r in captured_logs() if r.get("trace_type") == "FLEET_CONFIG_TRACE"]
        assert len(traces) == 1


def test_public_surface():
    assert set(fleet_config.__all__) >= {"get_active_config", "reload_config", "BillingConfig"}
