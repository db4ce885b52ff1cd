"""Handler for `/chat`: switch the terminal into chat mode."""

from __future__ import annotations

from bitcore.commands.acknowledgement import DEFAULT_PROMPTS
from bitcore.commands.context import CommandContext, flag_enabled
from bitcore.commands.errors import UpstreamServerError
from bitcore.commands.handlers._support import ensure_no_extra_args, require_service
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult, ModeChange
from bitcore.memory.models import normalize_layer
from bitcore.session.models import TerminalMode


class ChatCommand:
    """Enter chat mode; `/exit` or `/exitmemory` leave it."""

    name = "chat"
    aliases: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    default_action = None

    def help(self) -> str:
        """Return help block."""
        return help_line(
            "/chat",
            "Enter chat mode [--model --character --memory --layer]; "
            "/exit or /exitmemory leave it.",
        )

    async def execute(self, context: CommandContext) -> CommandResult:
        """Start a chat session and request the chat prompt."""
        ensure_no_extra_args(context)
        chat = require_service(context.services.chat, "Chat service is not configured.")
        if not chat.configured:
            raise UpstreamServerError("Chat backend is not configured.")
        memory_enabled = flag_enabled(context.flags.get("memory"))
        layer = context.flag("layer")
        chat.start(
            context.session,
            model=context.flag("model"),
            character=context.flag("character"),
            memory_enabled=memory_enabled,
            memory_layer=normalize_layer(layer).value if layer else None,
        )
        session = context.session
        context.output(
            f"Chat mode active (model: {session.chat_model}, "
            f"character: {session.chat_character}). Type /exit to leave."
        )
        return CommandResult.ok(
            data={
                "chat": {
                    "model": session.chat_model,
                    "character": session.chat_character,
                    "memoryEnabled": session.memory_enabled,
                }
            },
            mode_change=ModeChange(
                mode=TerminalMode.CHAT.value, prompt=DEFAULT_PROMPTS[TerminalMode.CHAT]
            ),
        )
