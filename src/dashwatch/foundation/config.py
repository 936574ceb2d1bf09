"""Dashwatch configuration management.

Loads configuration from .dashwatch/config.yaml with sensible defaults.
All settings can be overridden via environment variables (DASHWATCH_*).

Config locations (in priority order):
1. Explicit path passed to load_config()
2. .dashwatch/config.yaml (project-local)
3. ~/.dashwatch/config.yaml (user-global)
4. Built-in defaults

Example config.yaml:

    api:
      base_url: http://localhost:3000
      api_prefix: /conversations/api
    retry:
      max_retries: 5
    refresh:
      min_interval_ms: 1500
"""


import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from dashwatch.foundation.errors import config_error
from dashwatch.reliability.retry import RetryPolicy
from dashwatch.refresh.orchestrator import RefreshMode, ThrottlePolicy


@dataclass(frozen=True, slots=True)
class ApiConfig:
    """Where the automation service lives and how to talk to it."""

    base_url: str = "http://localhost:3000"
    """Service origin, without a trailing slash."""

    api_prefix: str = "/api"
    """Prefix for working-directory endpoints (/api or /conversations/api)."""

    timeout_s: float = 10.0
    """Per-request timeout in seconds."""

    updates_path: str = "/conversations/api/ws"
    """WebSocket path streaming conversation updates."""

    max_reconnect_delay_ms: int = 5000
    """Upper bound for the update stream's reconnect backoff."""

    reconnect_updates: bool = True
    """Reconnect the update stream after the service closes it."""


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Retry policy applied to every panel and tree fetch."""

    max_retries: int = 3
    initial_ms: int = 1000
    max_ms: int = 30_000
    multiplier: float = 2.0

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_ms=self.initial_ms,
            max_ms=self.max_ms,
            multiplier=self.multiplier,
        )


@dataclass(frozen=True, slots=True)
class RefreshConfig:
    """Throttling of event-driven panel refreshes."""

    min_interval_ms: int = 2000
    floor_delay_ms: int = 50
    mode: str = "throttled"
    """Either "throttled" or "immediate" (diagnostics only)."""

    def to_policy(self) -> ThrottlePolicy:
        return ThrottlePolicy(
            min_interval_ms=self.min_interval_ms,
            floor_delay_ms=self.floor_delay_ms,
        )

    def to_mode(self) -> RefreshMode:
        try:
            return RefreshMode(self.mode)
        except ValueError as e:
            raise config_error("refresh.mode", f"unknown mode {self.mode!r}") from e


@dataclass(frozen=True, slots=True)
class DashwatchConfig:
    """Root configuration for Dashwatch."""

    api: ApiConfig = field(default_factory=ApiConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    debug: bool = False


_SECTIONS: dict[str, type] = {
    "api": ApiConfig,
    "retry": RetryConfig,
    "refresh": RefreshConfig,
}


def _deep_update(base: dict, updates: dict) -> dict:
    """Recursively update a dict with another dict."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _coerce(value: str) -> bool | int | float | str:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def _apply_env_overrides(config_dict: dict, environ: dict[str, str] | None = None) -> dict:
    """Apply environment variable overrides.

    Environment variables follow the pattern DASHWATCH_<SECTION>_<KEY>.

    Examples:
        DASHWATCH_API_BASE_URL=http://runner:3000
        DASHWATCH_RETRY_MAX_RETRIES=5
        DASHWATCH_REFRESH_MODE=immediate
    """
    prefix = "DASHWATCH_"
    env = os.environ if environ is None else environ

    for key, value in env.items():
        if not key.startswith(prefix):
            continue

        path_str = key[len(prefix):].lower()

        if path_str == "debug":
            config_dict["debug"] = _coerce(value)
            continue

        for section, section_type in _SECTIONS.items():
            if not path_str.startswith(section + "_"):
                continue
            name = path_str[len(section) + 1:]
            known = {f.name for f in fields(section_type)}
            if name in known:
                config_dict.setdefault(section, {})[name] = _coerce(value)
            break

    return config_dict


def _build_section(section: str, data: Any) -> Any:
    section_type = _SECTIONS[section]
    if not isinstance(data, dict):
        raise config_error(section, "expected a mapping")
    known = {f.name for f in fields(section_type)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise config_error(section, f"unknown keys: {', '.join(unknown)}")
    return section_type(**data)


def _dict_to_config(data: dict) -> DashwatchConfig:
    """Convert a dict to DashwatchConfig, validating policies eagerly."""
    api = _build_section("api", data.get("api", {}))
    retry = _build_section("retry", data.get("retry", {}))
    refresh = _build_section("refresh", data.get("refresh", {}))

    try:
        retry.to_policy()
    except ValueError as e:
        raise config_error("retry", str(e)) from e
    try:
        refresh.to_policy()
    except ValueError as e:
        raise config_error("refresh", str(e)) from e
    refresh.to_mode()

    return DashwatchConfig(
        api=api,
        retry=retry,
        refresh=refresh,
        debug=bool(data.get("debug", False)),
    )


def load_config(
    path: str | Path | None = None,
    *,
    environ: dict[str, str] | None = None,
) -> DashwatchConfig:
    """Load configuration from file with defaults and env overrides.

    Priority (highest to lowest):
    1. Environment variables (DASHWATCH_*)
    2. Explicit path if provided
    3. .dashwatch/config.yaml (project-local)
    4. ~/.dashwatch/config.yaml (user-global)
    5. Built-in defaults

    Raises:
        DashwatchError: CONFIG_INVALID if a file or override is malformed.
    """
    defaults = DashwatchConfig()
    config_dict: dict[str, Any] = {
        "api": asdict(defaults.api),
        "retry": asdict(defaults.retry),
        "refresh": asdict(defaults.refresh),
        "debug": defaults.debug,
    }

    config_paths = []
    if path:
        config_paths.append(Path(path))
    config_paths.extend([
        Path(".dashwatch/config.yaml"),
        Path.home() / ".dashwatch" / "config.yaml",
    ])

    for config_path in config_paths:
        if config_path.exists():
            try:
                with open(config_path) as f:
                    file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise config_error(str(config_path), str(e)) from e
            if not isinstance(file_config, dict):
                raise config_error(str(config_path), "config must be a mapping")
            _deep_update(config_dict, file_config)
            break  # Use first found config

    config_dict = _apply_env_overrides(config_dict, environ)

    try:
        return _dict_to_config(config_dict)
    except TypeError as e:
        raise config_error("config", str(e)) from e


__all__ = [
    "ApiConfig",
    "DashwatchConfig",
    "RefreshConfig",
    "RetryConfig",
    "load_config",
]
