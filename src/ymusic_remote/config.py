"""Configuration models and loading."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ymusic_remote.errors import invalid_config_error

STATE_DIR = Path.home() / ".ymusic-remote"
CONFIG_FILE = STATE_DIR / "config.json"

ENV_HOST = "YMUSIC_REMOTE_HOST"
ENV_PORT = "YMUSIC_REMOTE_PORT"
ENV_APP_PATH = "YMUSIC_REMOTE_APP_PATH"
ENV_TELEMETRY_URL = "YMUSIC_REMOTE_TELEMETRY_URL"

# Cover image size rewrites applied to the player bar thumbnail URL.
COVER_SIZE_REPLACEMENTS: tuple[tuple[str, str], ...] = (
    ("/100x100", "/400x400"),
    ("/200x200", "/400x400"),
)


class CdpConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = Field(default=9222, ge=1, le=65535)
    connect_timeout: float = Field(default=5.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)


class ReconnectConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1.0, ge=0)
    exponential_backoff: bool = True


class LifecycleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    launch_grace_period: float = Field(default=10.0, ge=0)
    ui_ready_timeout: float = Field(default=2.0, ge=0)
    ui_ready_interval: float = Field(default=0.5, gt=0)
    port_ready_max_attempts: int = Field(default=15, ge=1)
    port_ready_interval: float = Field(default=1.0, ge=0)
    kill_process_wait: float = Field(default=1.0, ge=0)


class RetryConfig(BaseModel):
    """Retry policy for UI queries that race the page render."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=0.3, ge=0)
    grace_min_attempts: int = Field(default=4, ge=1)


class TelemetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    endpoint: str | None = None
    timeout: float = Field(default=5.0, gt=0)


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    cdp: CdpConfig = CdpConfig()
    reconnect: ReconnectConfig = ReconnectConfig()
    lifecycle: LifecycleConfig = LifecycleConfig()
    retry: RetryConfig = RetryConfig()
    telemetry: TelemetryConfig = TelemetryConfig()
    app_path: Path | None = None
    state_dir: Path = STATE_DIR

    def with_overrides(
        self,
        *,
        host: str | None = None,
        port: int | None = None,
        app_path: Path | None = None,
    ) -> Settings:
        """Return a copy with command-line overrides applied."""
        cdp_updates: dict[str, Any] = {}
        if host is not None:
            cdp_updates["host"] = host
        if port is not None:
            cdp_updates["port"] = port
        data = self.model_dump()
        data["cdp"].update(cdp_updates)
        if app_path is not None:
            data["app_path"] = app_path
        try:
            return Settings.model_validate(data)
        except ValidationError as exc:
            raise invalid_config_error("command line", _first_error(exc)) from None


def load_settings(path: Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """Load settings from a JSON file, then apply environment overrides.

    Args:
        path: Config file to read; defaults to ~/.ymusic-remote/config.json
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings

    Raises:
        ControllerError: If the file or an override is invalid
    """
    config_path = path or CONFIG_FILE
    env = os.environ if environ is None else environ

    data: dict[str, Any] = {}
    if config_path.is_file():
        try:
            loaded = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise invalid_config_error(str(config_path), str(exc)) from None
        if not isinstance(loaded, dict):
            raise invalid_config_error(str(config_path), "top-level value must be an object")
        data = loaded

    cdp = _section(data, "cdp", config_path)
    if env.get(ENV_HOST):
        cdp["host"] = env[ENV_HOST]
    if env.get(ENV_PORT):
        cdp["port"] = env[ENV_PORT]
    data["cdp"] = cdp
    if env.get(ENV_APP_PATH):
        data["app_path"] = env[ENV_APP_PATH]
    if env.get(ENV_TELEMETRY_URL):
        telemetry = _section(data, "telemetry", config_path)
        telemetry["endpoint"] = env[ENV_TELEMETRY_URL]
        data["telemetry"] = telemetry

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise invalid_config_error(str(config_path), _first_error(exc)) from None


def save_port(port: int, path: Path | None = None) -> Path:
    """Persist the debugging port into the config file, keeping other keys."""
    config_path = path or CONFIG_FILE
    data: dict[str, Any] = {}
    try:
        if config_path.is_file():
            loaded = json.loads(config_path.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                data = loaded
        cdp = _section(data, "cdp", config_path)
        cdp["port"] = port
        data["cdp"] = cdp
        CdpConfig.model_validate(cdp)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except ValidationError as exc:
        raise invalid_config_error(str(config_path), _first_error(exc)) from None
    except (OSError, json.JSONDecodeError) as exc:
        raise invalid_config_error(str(config_path), str(exc)) from None
    return config_path


def _section(data: dict[str, Any], key: str, config_path: Path) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise invalid_config_error(str(config_path), f"{key}: must be an object")
    return dict(value)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid value')}"
