"""Trailing acknowledgement and mode-change frames for dispatches."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from bitcore.commands.types import CommandResult
from bitcore.session.models import TerminalMode, TerminalSession

FrameSender = Callable[[dict[str, Any]], Any]

DEFAULT_PROMPTS = {
    TerminalMode.COMMAND: "> ",
    TerminalMode.CHAT: "[chat] > ",
}


def acknowledgement_frame(keep_disabled: bool) -> dict[str, Any]:
    """Return the frame that re-enables client input."""
    return {"type": "output", "data": "", "keepDisabled": keep_disabled}


def mode_change_frame(mode: str, prompt: str) -> dict[str, Any]:
    """Return a terminal mode transition frame."""
    return {"type": "mode_change", "mode": mode, "prompt": prompt}


class AcknowledgementController:
    """Single point producing end-of-dispatch frames."""

    def finalize(
        self,
        result: CommandResult,
        *,
        session: TerminalSession,
        is_websocket: bool,
        send: FrameSender | None,
    ) -> None:
        """Apply mode changes and emit trailing frames.

        For WebSocket callers an optional ``mode_change`` frame is followed by
        the acknowledgement, which is always the last frame of the dispatch.

        Args:
            result: Dispatch result.
            session: Session whose mode is updated.
            is_websocket: Transport marker.
            send: Raw frame sender (WebSocket only).
        """
        change = result.mode_change
        if change is not None:
            session.mode = TerminalMode(change.mode)
        if not is_websocket or send is None:
            return
        if change is not None:
            send(mode_change_frame(change.mode, change.prompt))
        send(acknowledgement_frame(result.keep_disabled))
