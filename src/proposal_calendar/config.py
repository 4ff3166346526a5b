"""Calendar configuration loading and validation.

Reads ``calendar.toml``, resolves ``${VAR}`` environment references, and
returns a validated CalendarConfig dataclass. Every section is optional; a
missing file path yields the defaults.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Pattern matching ${VAR_NAME}: alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_STORE_BACKENDS = ("memory", "postgres")

DEFAULT_CONFIG_FILENAME = "calendar.toml"


class ConfigError(Exception):
    """Raised when calendar configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [calendar.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class RecurrenceConfig:
    """Bounds on recurrence expansion from [calendar.recurrence].

    ``horizon_days`` caps never-ending series relative to "now";
    ``max_iterations`` caps the number of steps taken per series.
    """

    horizon_days: int = 730
    max_iterations: int = 1000


@dataclass
class WindowConfig:
    """View-window padding from [calendar.windows]."""

    month_padding_days: int = 7
    week_padding_days: int = 1
    agenda_days: int = 30


@dataclass
class StoreConfig:
    """Entity store backend selection from [calendar.store]."""

    backend: str = "memory"
    seed_path: str | None = None
    dsn: str | None = None
    min_pool_size: int = 1
    max_pool_size: int = 5


@dataclass
class CalendarConfig:
    """Top-level calendar configuration."""

    timezone: str = "UTC"
    recurrence: RecurrenceConfig = field(default_factory=RecurrenceConfig)
    windows: WindowConfig = field(default_factory=WindowConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def zoneinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _section(parent: dict[str, Any], name: str, path: str) -> dict[str, Any]:
    value = parent.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{path}] must be a table")
    return value


def _positive_int(section: dict[str, Any], key: str, default: int, path: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigError(f"{path}.{key} must be an integer, got {raw!r}")
    if raw < 1:
        raise ConfigError(f"{path}.{key} must be >= 1, got {raw}")
    return raw


def _non_negative_int(section: dict[str, Any], key: str, default: int, path: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigError(f"{path}.{key} must be an integer, got {raw!r}")
    if raw < 0:
        raise ConfigError(f"{path}.{key} must be >= 0, got {raw}")
    return raw


def parse_config(data: dict[str, Any]) -> CalendarConfig:
    """Validate an already-decoded TOML document into a CalendarConfig."""
    data = resolve_env_vars(data)
    calendar_section = _section(data, "calendar", "calendar")

    timezone = str(calendar_section.get("timezone", "UTC")).strip() or "UTC"
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Invalid calendar.timezone: {timezone!r}") from exc

    recurrence_section = _section(calendar_section, "recurrence", "calendar.recurrence")
    recurrence = RecurrenceConfig(
        horizon_days=_positive_int(recurrence_section, "horizon_days", 730, "calendar.recurrence"),
        max_iterations=_positive_int(
            recurrence_section, "max_iterations", 1000, "calendar.recurrence"
        ),
    )

    windows_section = _section(calendar_section, "windows", "calendar.windows")
    windows = WindowConfig(
        month_padding_days=_non_negative_int(
            windows_section, "month_padding_days", 7, "calendar.windows"
        ),
        week_padding_days=_non_negative_int(
            windows_section, "week_padding_days", 1, "calendar.windows"
        ),
        agenda_days=_positive_int(windows_section, "agenda_days", 30, "calendar.windows"),
    )

    store_section = _section(calendar_section, "store", "calendar.store")
    backend = str(store_section.get("backend", "memory")).strip().lower()
    if backend not in _STORE_BACKENDS:
        raise ConfigError(
            f"Invalid calendar.store.backend: {backend!r}. Must be one of {_STORE_BACKENDS}"
        )
    dsn = store_section.get("dsn")
    if backend == "postgres" and not dsn:
        raise ConfigError("calendar.store.dsn is required when backend is 'postgres'")
    seed_path = store_section.get("seed_path")
    store = StoreConfig(
        backend=backend,
        seed_path=str(seed_path) if seed_path else None,
        dsn=str(dsn) if dsn else None,
        min_pool_size=_positive_int(store_section, "min_pool_size", 1, "calendar.store"),
        max_pool_size=_positive_int(store_section, "max_pool_size", 5, "calendar.store"),
    )

    logging_section = _section(calendar_section, "logging", "calendar.logging")
    log_level = str(logging_section.get("level", "INFO")).upper()
    log_format = str(logging_section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid calendar.logging.format: {log_format!r}. Must be 'text' or 'json'"
        )
    log_root = logging_section.get("log_root")

    return CalendarConfig(
        timezone=timezone,
        recurrence=recurrence,
        windows=windows,
        store=store,
        logging=LoggingConfig(
            level=log_level,
            format=log_format,
            log_root=str(log_root) if log_root else None,
        ),
    )


def load_config(path: Path | None = None) -> CalendarConfig:
    """Load and validate ``calendar.toml``.

    Parameters
    ----------
    path:
        Either the TOML file itself or a directory containing
        ``calendar.toml``. ``None`` returns the defaults.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    if path is None:
        return CalendarConfig()

    toml_path = path / DEFAULT_CONFIG_FILENAME if path.is_dir() else path
    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
