"""Terminal session package."""

from bitcore.session.models import (
    CurrentUser,
    Message,
    MessageRole,
    TerminalMode,
    TerminalSession,
)

__all__ = [
    "CurrentUser",
    "Message",
    "MessageRole",
    "TerminalMode",
    "TerminalSession",
]
