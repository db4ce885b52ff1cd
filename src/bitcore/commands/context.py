"""Per-invocation command context and its builder."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from bitcore.commands.emitter import Emitter, Sink, create_emitter
from bitcore.commands.errors import PermissionDeniedError
from bitcore.commands.parser import FlagValue, ParsedCommand
from bitcore.config.settings import BitcoreSettings
from bitcore.observability import (
    LogChannel,
    LogLevel,
    ModuleLogger,
    create_module_logger,
    log_channel,
)
from bitcore.session.models import CurrentUser, TerminalSession

if TYPE_CHECKING:
    from bitcore.chat.service import ChatService
    from bitcore.commands.types import CommandHandler
    from bitcore.memory.store import FileMemoryStore
    from bitcore.missions.scheduler import MissionScheduler
    from bitcore.missions.service import MissionService
    from bitcore.profile.key_probe import KeyCheck
    from bitcore.profile.store import UserProfileStore
    from bitcore.prompts.repository import PromptRepository
    from bitcore.research.ports import ResearchEngine
    from bitcore.research.telemetry import TelemetryChannel

KeyProbe = Callable[[str, str], Awaitable["KeyCheck"]]


class PromptFn(Protocol):
    """Interactive prompt round-trip to a WebSocket client."""

    def __call__(
        self,
        text: str,
        *,
        hidden: bool = False,
        timeout: float | None = None,
    ) -> Awaitable[str | None]:
        """Ask the client a question; resolve ``None`` on timeout."""


@dataclass
class CommandServices:
    """Collaborators available to command handlers."""

    settings: BitcoreSettings
    profile: UserProfileStore
    log_channel: LogChannel = log_channel
    memory: FileMemoryStore | None = None
    prompts: PromptRepository | None = None
    missions: MissionService | None = None
    scheduler: MissionScheduler | None = None
    research: ResearchEngine | None = None
    chat: ChatService | None = None
    key_probe: KeyProbe | None = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CommandContext:
    """Immutable record passed to a handler for one invocation."""

    command_name: str
    action: str | None
    positional_args: tuple[str, ...]
    flags: dict[str, FlagValue]
    parsed: ParsedCommand
    current_user: CurrentUser
    session: TerminalSession
    is_websocket: bool
    output: Emitter
    error: Emitter
    services: CommandServices
    logger: ModuleLogger
    ws_prompt: PromptFn | None = None
    telemetry: TelemetryChannel | None = None
    csrf_token: str | None = None

    @property
    def verbose(self) -> bool:
        """Return whether ``--verbose`` was passed."""
        return flag_enabled(self.flags.get("verbose"))

    @property
    def json_output(self) -> bool:
        """Return whether ``--json`` was passed."""
        return flag_enabled(self.flags.get("json"))

    def flag(self, name: str, default: str | None = None) -> str | None:
        """Return string flag value, ``default`` when absent or boolean."""
        value = self.flags.get(name)
        if isinstance(value, str):
            return value
        return default

    def require_admin(self) -> None:
        """Raise when the current user is not an admin.

        Raises:
            PermissionDeniedError: If the role check fails.
        """
        if not self.current_user.is_admin:
            raise PermissionDeniedError(
                f"/{self.command_name} requires the admin role."
            )


def flag_enabled(value: FlagValue | None) -> bool:
    """Interpret a flag value as boolean (``"false"``/``"0"``/``"no"`` disable)."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return value.strip().lower() not in {"false", "0", "no", "off"}


def resolve_action(
    parsed: ParsedCommand,
    handler: CommandHandler | None,
    explicit: str | None = None,
) -> tuple[str | None, tuple[str, ...]]:
    """Compute action and remaining positional args.

    Args:
        parsed: Parsed command.
        handler: Target handler declaring ``actions``/``default_action``.
        explicit: Caller-supplied action override.

    Returns:
        Tuple of resolved action and positional args after consumption.
    """
    positional = parsed.positional_args
    if explicit:
        return explicit.lower(), positional
    if handler is None:
        return None, positional
    declared = {action.lower() for action in handler.actions}
    if positional and positional[0].lower() in declared:
        return positional[0].lower(), positional[1:]
    return handler.default_action, positional


def build_context(  # noqa: PLR0913
    parsed: ParsedCommand,
    *,
    services: CommandServices,
    session: TerminalSession,
    handler: CommandHandler | None = None,
    is_websocket: bool = False,
    output: Sink | None = None,
    error: Sink | None = None,
    action: str | None = None,
    ws_prompt: PromptFn | None = None,
    telemetry: TelemetryChannel | None = None,
    csrf_token: str | None = None,
) -> CommandContext:
    """Normalize transport inputs into one command context.

    Args:
        parsed: Parsed command (``command_name`` must be set).
        services: Collaborator bundle.
        session: Connection-scoped session record.
        handler: Resolved handler, used for action consumption.
        is_websocket: Transport marker.
        output: Caller output sink; stdio when absent.
        error: Caller error sink; stdio when absent.
        action: Explicit action override.
        ws_prompt: Optional interactive prompt capability.
        telemetry: Optional telemetry channel.
        csrf_token: Optional caller CSRF token.

    Returns:
        Frozen command context.
    """
    name = parsed.command_name or ""
    resolved_action, positional = resolve_action(parsed, handler, action)
    user = session.current_user or services.profile.get_current_user()
    logger = create_module_logger(f"commands.{name}", channel=services.log_channel)
    sink_logger = create_module_logger(
        f"commands.{name}",
        emit_to_std_streams=False,
        channel=services.log_channel,
    )
    return CommandContext(
        command_name=name,
        action=resolved_action,
        positional_args=positional,
        flags=dict(parsed.flags),
        parsed=parsed,
        current_user=user,
        session=session,
        is_websocket=is_websocket,
        output=create_emitter(output, LogLevel.INFO, sink_logger),
        error=create_emitter(error, LogLevel.ERROR, sink_logger),
        services=services,
        logger=logger,
        ws_prompt=ws_prompt,
        telemetry=telemetry,
        csrf_token=csrf_token or session.csrf_token,
    )
