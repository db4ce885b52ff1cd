"""Observability exports."""

from bitcore.observability.log_channel import (
    LogChannel,
    LogEntry,
    LogLevel,
    LogStats,
    log_channel,
    normalize_level,
)
from bitcore.observability.logger import (
    ModuleLogger,
    clone_meta,
    create_module_logger,
    is_debug_mode,
    set_debug_mode,
)

__all__ = [
    "LogChannel",
    "LogEntry",
    "LogLevel",
    "LogStats",
    "ModuleLogger",
    "clone_meta",
    "create_module_logger",
    "is_debug_mode",
    "log_channel",
    "normalize_level",
    "set_debug_mode",
]
