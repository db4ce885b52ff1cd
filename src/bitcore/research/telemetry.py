"""Replayable research telemetry events pushed to a transport sender."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict

from bitcore.observability import create_module_logger

DEFAULT_HISTORY_SIZE = 120
DEFAULT_STATUS_THROTTLE_SECONDS = 0.35

_LOGGER = create_module_logger("research.telemetry")

TelemetrySender = Callable[[dict[str, Any]], Any]


class TelemetryEvent(BaseModel):
    """One buffered telemetry event."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    type: str
    data: dict[str, Any]
    timestamp: float

    def to_frame(self) -> dict[str, Any]:
        """Return the wire frame for this event."""
        return {
            "type": self.type,
            "data": {**self.data, "timestamp": self.timestamp, "eventId": self.id},
        }


class TelemetryChannel:
    """Structured event channel for long-running handlers."""

    def __init__(
        self,
        send: TelemetrySender | None = None,
        *,
        history_size: int = DEFAULT_HISTORY_SIZE,
        status_throttle_seconds: float = DEFAULT_STATUS_THROTTLE_SECONDS,
    ) -> None:
        """Create telemetry channel.

        Args:
            send: Transport sender receiving event frames.
            history_size: Events retained for replay.
            status_throttle_seconds: Minimum gap between status events.

        Raises:
            ValueError: If history size is not positive.
        """
        if history_size <= 0:
            raise ValueError("TelemetryChannel history_size must be a positive integer.")
        self._send = send
        self._history: deque[TelemetryEvent] = deque(maxlen=history_size)
        self._throttle = status_throttle_seconds
        self._last_status_at: float | None = None

    @property
    def history(self) -> tuple[TelemetryEvent, ...]:
        """Return buffered events, oldest first."""
        return tuple(self._history)

    def update_sender(self, send: TelemetrySender | None) -> None:
        """Swap the transport sender without dropping history."""
        self._send = send

    def clear_history(self) -> None:
        """Drop buffered events."""
        self._history.clear()

    def emit_status(
        self, stage: str, message: str, detail: Any = None
    ) -> TelemetryEvent | None:
        """Publish a ``research-status`` event (throttled)."""
        now = time.monotonic()
        if (
            self._last_status_at is not None
            and now - self._last_status_at < self._throttle
        ):
            return None
        self._last_status_at = now
        return self._push(
            "research-status", {"stage": stage, "message": message, "detail": detail}
        )

    def emit_thought(self, text: str, stage: str | None = None) -> TelemetryEvent:
        """Publish a ``research-thought`` event."""
        return self._push("research-thought", {"text": text, "stage": stage})

    def emit_complete(self, *, success: bool, **payload: Any) -> TelemetryEvent:
        """Publish a ``research-complete`` event."""
        return self._push("research-complete", {"success": success, **payload})

    def replay(self, send: TelemetrySender | None = None) -> None:
        """Resend buffered events through ``send`` (or the active sender)."""
        target = send or self._send
        if target is None:
            return
        for event in self._history:
            try:
                target(event.to_frame())
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error(
                    "Failed to replay telemetry event.",
                    {"eventType": event.type, "error": exc},
                )
                break

    def _push(self, event_type: str, payload: dict[str, Any]) -> TelemetryEvent:
        event = TelemetryEvent(
            id=str(uuid4()),
            type=event_type,
            data=payload,
            timestamp=time.time(),
        )
        self._history.append(event)
        if self._send is not None:
            try:
                self._send(event.to_frame())
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error(
                    "Failed to send telemetry event.",
                    {"eventType": event_type, "error": exc},
                )
        return event
