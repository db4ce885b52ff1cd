"""Chat package."""

from bitcore.chat.service import (
    DEFAULT_CHARACTER,
    DEFAULT_CHAT_MODEL,
    ChatBackend,
    ChatError,
    ChatService,
    ChatTurn,
    routes_to_chat,
)

__all__ = [
    "DEFAULT_CHARACTER",
    "DEFAULT_CHAT_MODEL",
    "ChatBackend",
    "ChatError",
    "ChatService",
    "ChatTurn",
    "routes_to_chat",
]
