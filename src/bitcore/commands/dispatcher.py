"""Command dispatcher: lookup, uniform envelope, logging, acknowledgement."""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from bitcore.commands.acknowledgement import AcknowledgementController, FrameSender
from bitcore.commands.context import (
    CommandContext,
    CommandServices,
    PromptFn,
    build_context,
    flag_enabled,
)
from bitcore.commands.emitter import Sink
from bitcore.commands.errors import (
    ErrorKind,
    InputValidationError,
    handle_command_error,
)
from bitcore.commands.help import HelpRegistry
from bitcore.commands.parser import ParsedCommand, parse_command_line
from bitcore.commands.redaction import (
    redact_flags,
    redact_positionals,
    visible_positional_count,
)
from bitcore.commands.registry import CommandRegistry
from bitcore.commands.types import CommandHandler, CommandResult
from bitcore.session.models import CurrentUser, TerminalSession

if TYPE_CHECKING:
    from bitcore.research.telemetry import TelemetryChannel

UNKNOWN_COMMAND_HINT = "Type /help to list available commands."


class Dispatcher:
    """Route parsed commands to handlers and enforce the result contract."""

    def __init__(
        self,
        registry: CommandRegistry,
        services: CommandServices,
        *,
        acknowledgement: AcknowledgementController | None = None,
    ) -> None:
        """Create dispatcher.

        Args:
            registry: Frozen command registry.
            services: Collaborators injected into every context.
            acknowledgement: Optional controller override.
        """
        self._registry = registry
        self._services = services
        self._help = HelpRegistry(registry)
        self._acknowledgement = acknowledgement or AcknowledgementController()

    @property
    def registry(self) -> CommandRegistry:
        """Return the command registry."""
        return self._registry

    @property
    def help(self) -> HelpRegistry:
        """Return the help registry."""
        return self._help

    @property
    def services(self) -> CommandServices:
        """Return the injected collaborator bundle."""
        return self._services

    async def dispatch_line(  # noqa: PLR0913
        self,
        line: str,
        *,
        session: TerminalSession,
        is_websocket: bool = False,
        output: Sink | None = None,
        error: Sink | None = None,
        send: FrameSender | None = None,
        ws_prompt: PromptFn | None = None,
        telemetry: TelemetryChannel | None = None,
        csrf_token: str | None = None,
    ) -> CommandResult:
        """Tokenize, parse, and dispatch one raw command line.

        Args:
            line: Raw command line.
            session: Connection-scoped session.
            is_websocket: Transport marker.
            output: Output sink.
            error: Error sink.
            send: Raw frame sender for acknowledgement frames.
            ws_prompt: Optional prompt capability.
            telemetry: Optional telemetry channel.
            csrf_token: Optional caller CSRF token.

        Returns:
            Dispatch result.
        """
        stripped = line.rstrip("\r\n")
        limit = self._services.settings.max_line_length
        if len(stripped) > limit:
            context = build_context(
                ParsedCommand(),
                services=self._services,
                session=session,
                is_websocket=is_websocket,
                output=output,
                error=error,
            )
            result = handle_command_error(
                InputValidationError(
                    f"Command line exceeds {limit} characters."
                ),
                context=context,
            )
            self._acknowledgement.finalize(
                result, session=session, is_websocket=is_websocket, send=send
            )
            return result
        return await self.dispatch(
            parse_command_line(stripped),
            session=session,
            is_websocket=is_websocket,
            output=output,
            error=error,
            send=send,
            ws_prompt=ws_prompt,
            telemetry=telemetry,
            csrf_token=csrf_token,
        )

    async def dispatch(  # noqa: PLR0913
        self,
        parsed: ParsedCommand,
        *,
        session: TerminalSession,
        is_websocket: bool = False,
        output: Sink | None = None,
        error: Sink | None = None,
        send: FrameSender | None = None,
        action: str | None = None,
        ws_prompt: PromptFn | None = None,
        telemetry: TelemetryChannel | None = None,
        csrf_token: str | None = None,
    ) -> CommandResult:
        """Dispatch one parsed command.

        The handler is invoked at most once; raised errors are converted to
        the failure envelope and never reach the caller.

        Args:
            parsed: Parsed command.
            session: Connection-scoped session.
            is_websocket: Transport marker.
            output: Output sink.
            error: Error sink.
            send: Raw frame sender for acknowledgement frames.
            action: Explicit action override.
            ws_prompt: Optional prompt capability.
            telemetry: Optional telemetry channel.
            csrf_token: Optional caller CSRF token.

        Returns:
            Dispatch result.
        """
        result = await self._run(
            parsed,
            session=session,
            is_websocket=is_websocket,
            output=output,
            error=error,
            action=action,
            ws_prompt=ws_prompt,
            telemetry=telemetry,
            csrf_token=csrf_token,
        )
        self._acknowledgement.finalize(
            result, session=session, is_websocket=is_websocket, send=send
        )
        return result

    async def _run(  # noqa: PLR0913
        self,
        parsed: ParsedCommand,
        *,
        session: TerminalSession,
        is_websocket: bool,
        output: Sink | None,
        error: Sink | None,
        action: str | None,
        ws_prompt: PromptFn | None,
        telemetry: TelemetryChannel | None,
        csrf_token: str | None,
    ) -> CommandResult:
        if parsed.is_empty:
            return CommandResult.ok()

        name = parsed.command_name or ""
        handler = self._registry.get(name)
        context = build_context(
            parsed,
            services=self._services,
            session=session,
            handler=handler,
            is_websocket=is_websocket,
            output=output,
            error=error,
            action=action,
            ws_prompt=ws_prompt,
            telemetry=telemetry,
            csrf_token=csrf_token,
        )

        if name == "help":
            topic = parsed.positional_args[0] if parsed.positional_args else None
            context.output(self._help.render(topic))
            return CommandResult.ok()

        if handler is None:
            return handle_command_error(
                f"Unknown command: {name}",
                ErrorKind.UNKNOWN,
                context,
                hint=UNKNOWN_COMMAND_HINT,
            )

        if flag_enabled(parsed.flags.get("help")):
            context.output(self._help.render(name))
            return CommandResult.ok()

        context.logger.info(
            f"Command started: /{name}",
            {
                "command": name,
                "action": context.action,
                "flags": redact_flags(parsed.flags),
                "args": redact_positionals(
                    parsed.positional_args,
                    keep=visible_positional_count(handler, parsed),
                ),
                "transport": "websocket" if is_websocket else "console",
                "user": context.current_user.username,
            },
        )
        started = time.perf_counter()
        result = await self._invoke(handler, context)
        self._apply_user(session, result.data.get("user"))

        end_meta: dict[str, Any] = {
            "command": name,
            "success": result.success,
            "handled": result.handled,
            "durationMs": round((time.perf_counter() - started) * 1000, 3),
        }
        if "failedChecks" in result.data:
            end_meta["failedChecks"] = result.data["failedChecks"]
        if result.success:
            context.logger.info(f"Command completed: /{name}", end_meta)
        else:
            context.logger.warn(f"Command failed: /{name}", end_meta)
        return result

    @staticmethod
    async def _invoke(
        handler: CommandHandler, context: CommandContext
    ) -> CommandResult:
        try:
            outcome = await handler.execute(context)
        except Exception as exc:  # noqa: BLE001
            return handle_command_error(exc, context=context)
        if outcome is None:
            return CommandResult.ok()
        if not outcome.success and not outcome.handled:
            rendered = handle_command_error(
                outcome.error or f"/{context.command_name} failed.",
                context=context,
            )
            return outcome.model_copy(
                update={"handled": True, "error": rendered.error}
            )
        return outcome

    @staticmethod
    def _apply_user(session: TerminalSession, payload: object) -> None:
        if isinstance(payload, CurrentUser):
            session.current_user = payload
        elif isinstance(payload, Mapping):
            try:
                session.current_user = CurrentUser.model_validate(payload)
            except ValidationError:
                return


def structured_command(
    name: str,
    positional_args: Sequence[str] = (),
    flags: Mapping[str, str | bool] | None = None,
) -> ParsedCommand:
    """Build a parsed command from the structured wire form.

    Raises:
        InputValidationError: If the payload shape is invalid.
    """
    normalized = name.strip()
    normalized = normalized[1:] if normalized.startswith("/") else normalized
    try:
        return ParsedCommand(
            command_name=normalized.lower() or None,
            positional_args=tuple(positional_args),
            flags=dict(flags or {}),
        )
    except ValidationError as exc:
        raise InputValidationError("Invalid structured command payload.") from exc
