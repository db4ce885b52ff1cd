"""bitcore settings models and loading helpers."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from enum import StrEnum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_STORAGE_DIR = ".bitcore"
CONFIG_FILENAME = "config.yaml"


class Role(StrEnum):
    """Supported operator roles."""

    ADMIN = "admin"
    PUBLIC = "public"
    CLIENT = "client"


class WebSocketSettings(BaseModel):
    """Browser terminal server configuration."""

    model_config = ConfigDict(extra="forbid")

    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65535)


class MissionSettings(BaseModel):
    """Mission scheduler configuration."""

    model_config = ConfigDict(extra="forbid")

    scheduler_enabled: bool = False
    misfire_grace_seconds: int = Field(default=60, ge=1)
    stale_run_minutes: int = Field(default=60, ge=1)


class BitcoreSettings(BaseModel):
    """Root bitcore configuration model."""

    model_config = ConfigDict(extra="forbid")

    storage_dir: Path = Path(DEFAULT_STORAGE_DIR)
    username: str = "operator"
    role: Role = Role.ADMIN
    debug_mode: bool = False
    max_line_length: int = Field(default=4096, ge=1)
    log_buffer_size: int = Field(default=500, ge=50, le=5000)
    prompt_timeout_seconds: float = Field(default=120.0, gt=0)
    websocket: WebSocketSettings = WebSocketSettings()
    missions: MissionSettings = MissionSettings()


class SettingsError(RuntimeError):
    """Raised when settings cannot be decoded or validated."""


def _decode_config_payload(path: Path) -> dict[str, object]:
    """Decode settings payload from JSON or YAML.

    Args:
        path: Config file path.

    Returns:
        Parsed mapping payload.

    Raises:
        SettingsError: If decode fails or payload is not an object.
    """
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SettingsError(f"Invalid settings JSON: {exc}") from exc
    else:
        try:
            payload = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise SettingsError(f"Invalid settings YAML: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise SettingsError("Invalid settings payload: root must be an object")
    return payload


def _env_overrides(environ: Mapping[str, str]) -> dict[str, object]:
    """Collect settings overrides from environment variables."""
    overrides: dict[str, object] = {}
    user = environ.get("BITCORE_USER", "").strip()
    if user:
        overrides["username"] = user
    role = environ.get("BITCORE_ROLE", "").strip().lower()
    if role:
        overrides["role"] = role
    storage = environ.get("BITCORE_STORAGE_DIR", "").strip()
    if storage:
        overrides["storage_dir"] = storage
    debug = environ.get("DEBUG_MODE", "").strip().lower()
    if debug:
        overrides["debug_mode"] = debug == "true"
    return overrides


def default_config_path(environ: Mapping[str, str] | None = None) -> Path:
    """Return the config file path inside the configured storage directory."""
    env = os.environ if environ is None else environ
    storage = env.get("BITCORE_STORAGE_DIR", "").strip() or DEFAULT_STORAGE_DIR
    return Path(storage) / CONFIG_FILENAME


def load_settings(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> BitcoreSettings:
    """Load settings from disk and overlay environment variables.

    Args:
        path: Optional config file path; defaults to ``<storage>/config.yaml``.
        environ: Optional environment mapping (defaults to ``os.environ``).

    Returns:
        Parsed settings, defaults when the file does not exist.

    Raises:
        SettingsError: If payload decode or validation fails.
    """
    env = os.environ if environ is None else environ
    config_path = path if path is not None else default_config_path(env)
    payload = _decode_config_payload(config_path) if config_path.exists() else {}
    payload.update(_env_overrides(env))
    return _validate(payload)


def default_settings(environ: Mapping[str, str] | None = None) -> BitcoreSettings:
    """Return built-in defaults overlaid with environment variables only.

    Raises:
        SettingsError: If an environment override is invalid.
    """
    env = os.environ if environ is None else environ
    return _validate(_env_overrides(env))


def _validate(payload: dict[str, object]) -> BitcoreSettings:
    try:
        return BitcoreSettings.model_validate(payload)
    except ValidationError as exc:
        raise SettingsError(f"Invalid settings payload: {exc}") from exc
