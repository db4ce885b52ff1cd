"""Console front-end: rich sinks and a line runner sharing the dispatcher."""

from __future__ import annotations

from typing import Any

from rich.console import Console

from bitcore.chat.service import routes_to_chat
from bitcore.commands.acknowledgement import DEFAULT_PROMPTS
from bitcore.commands.dispatcher import Dispatcher
from bitcore.commands.emitter import serialize_value
from bitcore.commands.errors import handle_command_error
from bitcore.commands.types import CommandResult, ModeChange
from bitcore.observability import create_module_logger
from bitcore.session.models import TerminalMode, TerminalSession

_LOGGER = create_module_logger("transport.console", emit_to_std_streams=False)


class ConsoleSinks:
    """Output and error sinks writing through rich consoles."""

    def __init__(
        self,
        console: Console | None = None,
        error_console: Console | None = None,
    ) -> None:
        """Create sinks.

        Args:
            console: Console for regular output.
            error_console: Console for errors (stderr by default).
        """
        self.console = console or Console()
        self.error_console = error_console or Console(stderr=True)

    def output(self, value: Any) -> None:
        """Print one output value; structured values render as JSON."""
        text = serialize_value(value)
        if isinstance(value, dict | list | tuple) or hasattr(value, "model_dump"):
            self.console.print_json(text)
            return
        self.console.print(text, markup=False, highlight=False)

    def error(self, value: Any) -> None:
        """Print one error value in red."""
        self.error_console.print(
            serialize_value(value), style="bold red", markup=False, highlight=False
        )


class ConsoleRunner:
    """Feed console lines to the dispatcher or, in chat mode, the chat service."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        sinks: ConsoleSinks | None = None,
        session: TerminalSession | None = None,
    ) -> None:
        """Create runner.

        Args:
            dispatcher: Shared command dispatcher.
            sinks: Console sinks.
            session: Console session (fresh by default).
        """
        self._dispatcher = dispatcher
        self.sinks = sinks or ConsoleSinks()
        self.session = session or TerminalSession()

    @property
    def prompt(self) -> str:
        """Return the prompt for the current terminal mode."""
        return DEFAULT_PROMPTS[self.session.mode]

    async def run_line(self, line: str) -> CommandResult:
        """Handle one console line.

        Returns:
            Dispatch or chat result.
        """
        chat = self._dispatcher.services.chat
        if self.session.chat_active and chat is not None:
            if routes_to_chat(line):
                return await self._chat(line.strip())
        return await self._dispatcher.dispatch_line(
            line,
            session=self.session,
            output=self.sinks.output,
            error=self.sinks.error,
        )

    async def _chat(self, text: str) -> CommandResult:
        chat = self._dispatcher.services.chat
        if chat is None:
            return CommandResult.failure("Chat service is not configured.")
        try:
            turn = await chat.handle_message(self.session, text, self.sinks.output)
        except Exception as exc:  # noqa: BLE001
            return handle_command_error(
                exc,
                error_sink=self.sinks.error,
                output_sink=self.sinks.output,
                logger=_LOGGER,
            )
        if turn.exited:
            self.session.mode = TerminalMode.COMMAND
            return CommandResult.ok(
                mode_change=ModeChange(
                    mode=TerminalMode.COMMAND.value,
                    prompt=DEFAULT_PROMPTS[TerminalMode.COMMAND],
                )
            )
        return CommandResult.ok()
