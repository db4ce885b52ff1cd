"""Shared command-domain types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from bitcore.commands.context import CommandContext


class ModeChange(BaseModel):
    """Terminal mode transition requested by a handler."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: str
    prompt: str


class CommandResult(BaseModel):
    """Canonical outcome returned by handlers and the dispatcher."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    success: bool
    handled: bool = True
    keep_disabled: bool = False
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    mode_change: ModeChange | None = None

    @classmethod
    def ok(
        cls,
        *,
        data: dict[str, Any] | None = None,
        keep_disabled: bool = False,
        mode_change: ModeChange | None = None,
    ) -> CommandResult:
        """Construct a successful command result.

        Args:
            data: Optional payload merged into the wire envelope.
            keep_disabled: Keep client input disabled after acknowledgement.
            mode_change: Optional terminal mode transition.

        Returns:
            Successful command result.
        """
        return cls(
            success=True,
            handled=True,
            keep_disabled=keep_disabled,
            data=data or {},
            mode_change=mode_change,
        )

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        handled: bool = True,
        data: dict[str, Any] | None = None,
    ) -> CommandResult:
        """Construct a failed command result.

        Args:
            error: Human summary of the failure.
            handled: Whether the failure was already rendered to the sink.
            data: Optional payload merged into the wire envelope.

        Returns:
            Failed command result.
        """
        return cls(
            success=False,
            handled=handled,
            keep_disabled=False,
            error=error,
            data=data or {},
        )

    def to_envelope(self) -> dict[str, Any]:
        """Return the wire/console envelope ``{success, handled, keepDisabled, ...}``."""
        envelope: dict[str, Any] = {
            **self.data,
            "success": self.success,
            "handled": self.handled,
            "keepDisabled": self.keep_disabled,
        }
        if self.error is not None:
            envelope["error"] = self.error
        return envelope


class CommandHandler(Protocol):
    """Protocol implemented by slash command handlers."""

    name: str
    aliases: tuple[str, ...]
    actions: tuple[str, ...]
    default_action: str | None

    def help(self) -> str:
        """Return help block whose first line starts with ``/<name>``."""

    async def execute(self, context: CommandContext) -> CommandResult | None:
        """Execute one invocation.

        Args:
            context: Per-dispatch command context.
        """
