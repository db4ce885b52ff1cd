"""Module-scoped structured loggers bound to the log channel."""

from __future__ import annotations

import logging
import os
import traceback
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bitcore.observability.log_channel import (
    LogChannel,
    LogEntry,
    LogLevel,
    log_channel,
    normalize_level,
    normalize_message,
)

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}
_debug_override: bool | None = None


def set_debug_mode(enabled: bool | None) -> None:
    """Override process-wide debug mode (``None`` restores env lookup).

    Args:
        enabled: Explicit debug flag or ``None``.
    """
    global _debug_override  # noqa: PLW0603
    _debug_override = enabled


def is_debug_mode() -> bool:
    """Return whether debug entries should be recorded."""
    if _debug_override is not None:
        return _debug_override
    return os.environ.get("DEBUG_MODE", "").strip().lower() == "true"


def clone_meta(value: Any, _seen: set[int] | None = None) -> Any:
    """Deep-clone metadata into a JSON-friendly, cycle-free snapshot.

    Args:
        value: Metadata value.

    Returns:
        Cloned value; exceptions become ``{name, message, stack}`` and
        callables become ``{type: "function", name}``.
    """
    seen = _seen if _seen is not None else set()
    if value is None or isinstance(value, str | int | float | bool):
        return value
    if isinstance(value, BaseException):
        return {
            "name": type(value).__name__,
            "message": str(value),
            "stack": _format_stack(value),
        }
    if callable(value) and not isinstance(value, type):
        return {"type": "function", "name": getattr(value, "__name__", "anonymous")}
    marker = id(value)
    if marker in seen:
        return "[Circular]"
    if isinstance(value, Mapping):
        seen.add(marker)
        cloned = {str(key): clone_meta(item, seen) for key, item in value.items()}
        seen.discard(marker)
        return cloned
    if isinstance(value, list | tuple | set | frozenset):
        seen.add(marker)
        items = [clone_meta(item, seen) for item in value]
        seen.discard(marker)
        return items
    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        return clone_meta(model_dump(mode="json"), seen)
    return str(value)


def _format_stack(error: BaseException) -> str | None:
    """Render traceback text for an exception when one exists."""
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(error))


def _merge_meta(base: Any, meta: Any) -> Any:
    """Merge base and call metadata with call values taking precedence."""
    if base is None and meta is None:
        return None
    cloned_base = clone_meta(base)
    cloned_meta = clone_meta(meta)
    if isinstance(cloned_base, dict) and isinstance(cloned_meta, dict):
        return {**cloned_base, **cloned_meta}
    if cloned_meta is None:
        return cloned_base
    if cloned_base is None:
        return cloned_meta
    return {"base": cloned_base, "meta": cloned_meta}


@dataclass(frozen=True)
class ModuleLogger:
    """Immutable logger writing to the shared log channel."""

    source: str
    emit_to_std_streams: bool = True
    base_meta: Any = None
    channel: LogChannel = field(default=log_channel, repr=False)

    def log(self, level: object, message: object, meta: Any = None) -> LogEntry | None:
        """Record one entry at the given level.

        Args:
            level: Raw level value.
            message: Message payload (text, exception, or object).
            meta: Optional metadata.

        Returns:
            Stored entry, or ``None`` when suppressed or empty.
        """
        normalized = normalize_level(level)
        if normalized == LogLevel.DEBUG and not is_debug_mode():
            return None
        text = _format_message(message)
        entry = self.channel.push(
            level=normalized,
            message=text,
            source=self.source,
            meta=_merge_meta(self.base_meta, meta),
        )
        if entry is not None and self.emit_to_std_streams:
            logging.getLogger(self.source).log(_STDLIB_LEVELS[normalized], text)
        return entry

    def debug(self, message: object, meta: Any = None) -> LogEntry | None:
        """Record debug entry (suppressed outside debug mode)."""
        return self.log(LogLevel.DEBUG, message, meta)

    def info(self, message: object, meta: Any = None) -> LogEntry | None:
        """Record info entry."""
        return self.log(LogLevel.INFO, message, meta)

    def warn(self, message: object, meta: Any = None) -> LogEntry | None:
        """Record warning entry."""
        return self.log(LogLevel.WARN, message, meta)

    def error(self, message: object, meta: Any = None) -> LogEntry | None:
        """Record error entry."""
        return self.log(LogLevel.ERROR, message, meta)

    def child(self, label: str, **overrides: Any) -> ModuleLogger:
        """Return logger whose source is suffixed with ``:label``.

        Args:
            label: Child label.
            **overrides: Optional ``emit_to_std_streams`` / ``base_meta``.

        Returns:
            Child logger.
        """
        source = f"{self.source}:{label}" if label else self.source
        return ModuleLogger(
            source=source,
            emit_to_std_streams=overrides.get(
                "emit_to_std_streams", self.emit_to_std_streams
            ),
            base_meta=overrides.get("base_meta", self.base_meta),
            channel=self.channel,
        )

    def with_meta(self, meta: Any) -> ModuleLogger:
        """Return logger with metadata merged into every entry.

        Args:
            meta: Base metadata to merge.

        Returns:
            Logger bound to merged metadata.
        """
        return ModuleLogger(
            source=self.source,
            emit_to_std_streams=self.emit_to_std_streams,
            base_meta=_merge_meta(self.base_meta, meta),
            channel=self.channel,
        )


def _format_message(message: object) -> str:
    """Format message payloads, preferring full traceback for exceptions."""
    if isinstance(message, BaseException):
        return _format_stack(message) or normalize_message(message)
    return normalize_message(message)


def create_module_logger(
    source: str,
    *,
    emit_to_std_streams: bool = True,
    base_meta: Any = None,
    channel: LogChannel | None = None,
) -> ModuleLogger:
    """Create a named module logger.

    Args:
        source: Module source identifier (blank falls back to ``server``).
        emit_to_std_streams: Mirror entries through stdlib ``logging``.
        base_meta: Metadata merged into every entry.
        channel: Optional channel override (defaults to process channel).

    Returns:
        Module logger.
    """
    name = source.strip() if isinstance(source, str) and source.strip() else "server"
    return ModuleLogger(
        source=name,
        emit_to_std_streams=emit_to_std_streams,
        base_meta=clone_meta(base_meta),
        channel=channel or log_channel,
    )
