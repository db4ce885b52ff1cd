"""Process-wide ring buffer of structured log entries."""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from collections.abc import Callable, Iterable
from enum import StrEnum
from threading import Lock
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict

DEFAULT_BUFFER_SIZE = 500
MIN_BUFFER_SIZE = 50
MAX_BUFFER_SIZE = 5000

_LOGGER = logging.getLogger(__name__)


class LogLevel(StrEnum):
    """Supported log channel levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


def normalize_level(level: object) -> LogLevel:
    """Normalize free-form level input to a supported level.

    Args:
        level: Raw level value (``warning`` maps to ``warn``).

    Returns:
        Normalized level, ``info`` when unrecognized.
    """
    value = level.strip().lower() if isinstance(level, str) else ""
    if value == "warning":
        return LogLevel.WARN
    try:
        return LogLevel(value)
    except ValueError:
        return LogLevel.INFO


def normalize_message(message: object) -> str:
    """Coerce a log message payload to text.

    Args:
        message: Raw message payload.

    Returns:
        Text message; exceptions render as ``Name: message``.
    """
    if message is None:
        return ""
    if isinstance(message, str):
        return message
    if isinstance(message, BaseException):
        return f"{type(message).__name__}: {message}"
    if isinstance(message, dict | list | tuple):
        try:
            return json.dumps(message, default=str)
        except (TypeError, ValueError):
            return "[unserializable message]"
    return str(message)


class LogEntry(BaseModel):
    """One normalized log channel record."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    sequence: int
    timestamp: float
    level: LogLevel
    source: str
    message: str
    meta: Any = None


class LogStats(BaseModel):
    """Aggregate counts for buffered entries."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    total: int
    levels: dict[str, int]
    first_timestamp: float | None = None
    last_timestamp: float | None = None


LogListener = Callable[[LogEntry], None]


class LogChannel:
    """Bounded, thread-safe in-memory log channel."""

    def __init__(self, *, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        """Create channel with fixed initial capacity.

        Args:
            buffer_size: Maximum number of retained entries.

        Raises:
            ValueError: If buffer size is not a positive integer.
        """
        if buffer_size <= 0:
            raise ValueError("LogChannel buffer_size must be a positive integer.")
        self._buffer_size = buffer_size
        self._entries: deque[LogEntry] = deque()
        self._listeners: list[LogListener] = []
        self._sequence = 0
        self._lock = Lock()

    @property
    def buffer_size(self) -> int:
        """Return current channel capacity."""
        return self._buffer_size

    def push(
        self,
        *,
        level: object,
        message: object,
        source: str | None = None,
        meta: Any = None,
        timestamp: float | None = None,
    ) -> LogEntry | None:
        """Append one entry and notify subscribers.

        Args:
            level: Raw level value.
            message: Raw message payload.
            source: Emitting module name.
            meta: Metadata snapshot (already cloned by module loggers).
            timestamp: Optional epoch seconds override.

        Returns:
            Stored entry, or ``None`` when the message is empty.
        """
        text = normalize_message(message)
        if not text:
            return None
        with self._lock:
            self._sequence += 1
            entry = LogEntry(
                id=str(uuid4()),
                sequence=self._sequence,
                timestamp=timestamp if timestamp is not None else time.time(),
                level=normalize_level(level),
                source=str(source) if source else "server",
                message=text,
                meta=meta,
            )
            self._entries.append(entry)
            while len(self._entries) > self._buffer_size:
                self._entries.popleft()
            listeners = tuple(self._listeners)
        for listener in listeners:
            try:
                listener(entry)
            except Exception:  # noqa: BLE001
                _LOGGER.warning("Log channel listener failed.", exc_info=True)
        return entry

    def snapshot(
        self,
        *,
        limit: int | None = None,
        levels: Iterable[str] | str | None = None,
        search: str | None = None,
        since: float | None = None,
        sample: int = 1,
    ) -> list[LogEntry]:
        """Return a filtered copy of buffered entries, oldest first.

        Args:
            limit: Max entries returned (newest retained), capped at capacity.
            levels: Level filter as iterable or comma-separated string.
            search: Case-insensitive substring filter on message text.
            since: Only entries at or after this epoch timestamp.
            sample: Keep every Nth entry by sequence number.

        Returns:
            Matching entries.
        """
        with self._lock:
            entries = list(self._entries)
            capacity = self._buffer_size
        effective_limit = min(limit if limit and limit > 0 else capacity, capacity)
        if isinstance(levels, str):
            levels = [item for item in levels.split(",") if item.strip()]
        level_filter = {normalize_level(item) for item in levels or ()}
        needle = search.strip().lower() if search and search.strip() else None

        filtered = [
            entry
            for entry in entries
            if (not level_filter or entry.level in level_filter)
            and (since is None or entry.timestamp >= since)
            and (needle is None or needle in entry.message.lower())
            and (sample <= 1 or entry.sequence % sample == 0)
        ]
        return filtered[-effective_limit:]

    def stats(self, *, since: float | None = None) -> LogStats:
        """Summarize buffered entries by level.

        Args:
            since: Optional lower timestamp bound.

        Returns:
            Aggregate counts and timestamp span.
        """
        with self._lock:
            entries = list(self._entries)
        counts = {level.value: 0 for level in LogLevel}
        selected = [
            entry for entry in entries if since is None or entry.timestamp >= since
        ]
        for entry in selected:
            counts[entry.level.value] += 1
        stamps = [entry.timestamp for entry in selected]
        return LogStats(
            total=len(selected),
            levels=counts,
            first_timestamp=min(stamps) if stamps else None,
            last_timestamp=max(stamps) if stamps else None,
        )

    def subscribe(self, listener: LogListener) -> Callable[[], None]:
        """Register listener for new entries.

        Args:
            listener: Callable receiving each stored entry.

        Returns:
            Callable removing the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def clear(self) -> None:
        """Drop buffered entries and reset sequence numbering."""
        with self._lock:
            self._entries.clear()
            self._sequence = 0

    def configure(self, *, buffer_size: int) -> int:
        """Resize the buffer, clamping to supported bounds.

        Args:
            buffer_size: Requested capacity.

        Returns:
            Effective capacity after clamping.

        Raises:
            ValueError: If buffer size is not a positive integer.
        """
        if buffer_size <= 0:
            raise ValueError("LogChannel buffer_size must be a positive integer.")
        clamped = max(MIN_BUFFER_SIZE, min(buffer_size, MAX_BUFFER_SIZE))
        with self._lock:
            self._buffer_size = clamped
            while len(self._entries) > clamped:
                self._entries.popleft()
        return clamped


log_channel = LogChannel()
