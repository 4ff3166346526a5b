"""Tests for calendar.toml loading, env-var resolution, and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from proposal_calendar.config import (
    CalendarConfig,
    ConfigError,
    load_config,
    parse_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "calendar.toml"
    path.write_text(body)
    return path


class TestLoadConfig:
    def test_no_path_returns_defaults(self):
        config = load_config()

        assert config == CalendarConfig()
        assert config.recurrence.horizon_days == 730
        assert config.recurrence.max_iterations == 1000
        assert config.windows.month_padding_days == 7
        assert config.store.backend == "memory"

    def test_full_file(self, tmp_path):
        path = _write(
            tmp_path,
            """
[calendar]
timezone = "America/New_York"

[calendar.recurrence]
horizon_days = 365
max_iterations = 200

[calendar.windows]
month_padding_days = 0
week_padding_days = 2
agenda_days = 14

[calendar.store]
backend = "memory"
seed_path = "fixtures/seed.json"

[calendar.logging]
level = "debug"
format = "JSON"
""",
        )

        config = load_config(path)

        assert config.timezone == "America/New_York"
        assert config.zoneinfo.key == "America/New_York"
        assert config.recurrence.horizon_days == 365
        assert config.recurrence.max_iterations == 200
        assert config.windows.month_padding_days == 0
        assert config.windows.agenda_days == 14
        assert config.store.seed_path == "fixtures/seed.json"
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"

    def test_directory_path_reads_calendar_toml(self, tmp_path):
        _write(tmp_path, '[calendar]\ntimezone = "Europe/London"\n')
        assert load_config(tmp_path).timezone == "Europe/London"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        path = _write(tmp_path, "[calendar\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)


class TestValidation:
    def test_unknown_timezone(self):
        with pytest.raises(ConfigError, match="timezone"):
            parse_config({"calendar": {"timezone": "Mars/Olympus_Mons"}})

    def test_unknown_backend(self):
        with pytest.raises(ConfigError, match="backend"):
            parse_config({"calendar": {"store": {"backend": "sqlite"}}})

    def test_postgres_requires_dsn(self):
        with pytest.raises(ConfigError, match="dsn"):
            parse_config({"calendar": {"store": {"backend": "postgres"}}})

    @pytest.mark.parametrize(
        ("section", "key", "value"),
        [
            ("recurrence", "horizon_days", 0),
            ("recurrence", "max_iterations", "many"),
            ("windows", "agenda_days", 0),
            ("windows", "month_padding_days", -1),
            ("windows", "week_padding_days", True),
        ],
    )
    def test_integer_bounds(self, section, key, value):
        with pytest.raises(ConfigError, match=key):
            parse_config({"calendar": {section: {key: value}}})

    def test_padding_may_be_zero(self):
        config = parse_config({"calendar": {"windows": {"week_padding_days": 0}}})
        assert config.windows.week_padding_days == 0

    def test_sections_must_be_tables(self):
        with pytest.raises(ConfigError, match="must be a table"):
            parse_config({"calendar": {"store": "postgres"}})

    def test_bad_log_format(self):
        with pytest.raises(ConfigError, match="format"):
            parse_config({"calendar": {"logging": {"format": "xml"}}})


class TestEnvVars:
    def test_dsn_is_resolved_from_the_environment(self, monkeypatch):
        monkeypatch.setenv("CALENDAR_DB_PASSWORD", "s3cret")
        config = parse_config(
            {
                "calendar": {
                    "store": {
                        "backend": "postgres",
                        "dsn": "postgresql://calendar:${CALENDAR_DB_PASSWORD}@db/calendar",
                    }
                }
            }
        )
        assert config.store.dsn == "postgresql://calendar:s3cret@db/calendar"

    def test_missing_variables_are_all_reported(self, monkeypatch):
        monkeypatch.delenv("MISSING_ONE", raising=False)
        monkeypatch.delenv("MISSING_TWO", raising=False)
        with pytest.raises(ConfigError, match="MISSING_ONE, MISSING_TWO"):
            resolve_env_vars("${MISSING_ONE}/${MISSING_TWO}")

    def test_non_string_leaves_are_untouched(self):
        assert resolve_env_vars({"a": [1, True, None]}) == {"a": [1, True, None]}
