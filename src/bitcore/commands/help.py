"""Help text aggregation for registered commands."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from bitcore.commands.types import CommandHandler

HELP_COLUMN_WIDTH = 26
HELP_SELF_LINE = f"{'/help':<{HELP_COLUMN_WIDTH}}Show this help message."


class HandlerLookup(Protocol):
    """Read-only view over registered handlers."""

    def names(self) -> Iterable[str]:
        """Return canonical command names."""

    def get(self, name: str) -> CommandHandler | None:
        """Return handler for a name or alias."""


def help_line(usage: str, summary: str) -> str:
    """Format one aligned help line."""
    return f"{usage:<{HELP_COLUMN_WIDTH}}{summary}"


class HelpRegistry:
    """Build ``/help`` output from handler help blocks."""

    def __init__(self, handlers: HandlerLookup) -> None:
        """Create registry over a handler lookup.

        Args:
            handlers: Registry exposing canonical names and handlers.
        """
        self._handlers = handlers

    def block(self, name: str) -> str | None:
        """Return help block for a name or alias, ``None`` when unknown."""
        handler = self._handlers.get(name.lstrip("/").lower())
        if handler is None:
            return None
        return handler.help().strip("\n")

    def aggregate(self) -> str:
        """Return every block sorted by command name, ending with ``/help``."""
        blocks = [
            handler.help().strip("\n")
            for name in sorted(self._handlers.names())
            if (handler := self._handlers.get(name)) is not None
        ]
        return "\n\n".join([*blocks, HELP_SELF_LINE])

    def render(self, name: str | None = None) -> str:
        """Return one block for a known name, else the aggregate."""
        if name:
            block = self.block(name)
            if block is not None:
                return block
        return self.aggregate()
