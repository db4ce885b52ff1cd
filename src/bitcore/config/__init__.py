"""bitcore configuration package."""

from bitcore.config.settings import (
    BitcoreSettings,
    MissionSettings,
    Role,
    SettingsError,
    WebSocketSettings,
    default_config_path,
    default_settings,
    load_settings,
)

__all__ = [
    "BitcoreSettings",
    "MissionSettings",
    "Role",
    "SettingsError",
    "WebSocketSettings",
    "default_config_path",
    "default_settings",
    "load_settings",
]
