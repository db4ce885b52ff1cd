"""Chat turn handling over a pluggable model backend."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from bitcore.memory.store import FileMemoryStore
from bitcore.observability import create_module_logger
from bitcore.session.models import Message, MessageRole, TerminalMode, TerminalSession

DEFAULT_CHAT_MODEL = "qwen-2.5-qwq-32b"
DEFAULT_CHARACTER = "bitcore"
DEFAULT_HISTORY_LIMIT = 40
EXIT_COMMAND = "/exit"
EXIT_MEMORY_COMMAND = "/exitmemory"

_LOGGER = create_module_logger("chat.service")


def routes_to_chat(line: str) -> bool:
    """Return whether a line typed in chat mode belongs to the chat service.

    Plain text and the two exit commands go to chat; other slash commands
    still reach the dispatcher.
    """
    stripped = line.strip()
    if not stripped.startswith("/"):
        return True
    return stripped.lower() in {EXIT_COMMAND, EXIT_MEMORY_COMMAND}


class ChatBackend(Protocol):
    """External chat model."""

    async def reply(
        self, messages: Sequence[Message], model: str, character: str
    ) -> str:
        """Return assistant reply for the transcript.

        Args:
            messages: Transcript, oldest first, ending with the user turn.
            model: Model identifier.
            character: Persona identifier.
        """


class ChatError(RuntimeError):
    """Chat failure carrying an error kind."""

    def __init__(self, message: str, *, kind: str = "server") -> None:
        """Create chat failure.

        Args:
            message: Human-readable error message.
            kind: Error kind for rendering.
        """
        super().__init__(message)
        self.kind = kind


class ChatTurn(BaseModel):
    """Outcome of one chat input."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    exited: bool = False
    reply: str | None = None
    stored_memory_id: str | None = None


class ChatService:
    """Manage chat mode state and route turns to the backend."""

    def __init__(
        self,
        *,
        backend: ChatBackend | None = None,
        memory: FileMemoryStore | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        """Create chat service.

        Args:
            backend: Chat model backend.
            memory: Memory store used by ``/exitmemory`` and memory mode.
            history_limit: Max transcript messages kept on the session.
        """
        self._backend = backend
        self._memory = memory
        self._history_limit = history_limit

    @property
    def configured(self) -> bool:
        """Return whether a backend is attached."""
        return self._backend is not None

    def start(
        self,
        session: TerminalSession,
        *,
        model: str | None = None,
        character: str | None = None,
        memory_enabled: bool = False,
        memory_layer: str | None = None,
    ) -> None:
        """Enter chat mode with a fresh transcript."""
        session.chat_active = True
        session.chat_messages = []
        session.chat_model = model or DEFAULT_CHAT_MODEL
        session.chat_character = character or DEFAULT_CHARACTER
        session.memory_enabled = memory_enabled
        session.memory_layer = memory_layer
        session.mode = TerminalMode.CHAT

    async def handle_message(
        self,
        session: TerminalSession,
        text: str,
        output: Callable[[Any], Any],
    ) -> ChatTurn:
        """Process one chat input line.

        Args:
            session: Session in chat mode.
            text: User input.
            output: Sink receiving the assistant reply.

        Returns:
            Turn outcome.

        Raises:
            ChatError: If chat is inactive or no backend is configured.
        """
        stripped = text.strip()
        if not session.chat_active:
            raise ChatError("Chat mode is not active. Run /chat first.", kind="input_validation")
        lowered = stripped.lower()
        if lowered == EXIT_COMMAND:
            session.reset_chat()
            output("Exited chat mode.")
            return ChatTurn(exited=True)
        if lowered == EXIT_MEMORY_COMMAND:
            record_id = self._store_transcript(session)
            session.reset_chat()
            output(
                "Chat transcript stored to memory. Exited chat mode."
                if record_id
                else "Nothing to store. Exited chat mode."
            )
            return ChatTurn(exited=True, stored_memory_id=record_id)
        if not stripped:
            return ChatTurn()
        if self._backend is None:
            raise ChatError("Chat backend is not configured.")

        session.chat_messages = [
            *session.chat_messages,
            Message(role=MessageRole.USER, content=stripped),
        ]
        reply = await self._backend.reply(
            tuple(session.chat_messages),
            session.chat_model or DEFAULT_CHAT_MODEL,
            session.chat_character or DEFAULT_CHARACTER,
        )
        session.chat_messages = [
            *session.chat_messages,
            Message(role=MessageRole.ASSISTANT, content=reply),
        ][-self._history_limit :]
        output(reply)
        return ChatTurn(reply=reply)

    def _store_transcript(self, session: TerminalSession) -> str | None:
        if self._memory is None or not session.chat_messages:
            return None
        transcript = "\n".join(
            f"{message.role.value}: {message.content}" for message in session.chat_messages
        )
        record = self._memory.store(
            transcript,
            layer=session.memory_layer,
            role="system",
            tags=("chat",),
            source="chat",
        )
        _LOGGER.info("Chat transcript stored.", {"id": record.id})
        return record.id
