"""Built-in command handlers."""

from bitcore.commands.handlers.chat import ChatCommand
from bitcore.commands.handlers.diagnose import DiagnoseCommand
from bitcore.commands.handlers.keys import KeysCommand
from bitcore.commands.handlers.login import (
    LoginCommand,
    LogoutCommand,
    PasswordChangeCommand,
)
from bitcore.commands.handlers.logs import LogsCommand
from bitcore.commands.handlers.memory import MemoryCommand
from bitcore.commands.handlers.missions import MissionsCommand
from bitcore.commands.handlers.prompts import PromptsCommand
from bitcore.commands.handlers.research import ResearchCommand
from bitcore.commands.handlers.status import StatusCommand
from bitcore.commands.types import CommandHandler


def builtin_handlers() -> tuple[CommandHandler, ...]:
    """Return fresh instances of every built-in handler."""
    return (
        ChatCommand(),
        DiagnoseCommand(),
        KeysCommand(),
        LoginCommand(),
        LogoutCommand(),
        LogsCommand(),
        MemoryCommand(),
        MissionsCommand(),
        PasswordChangeCommand(),
        PromptsCommand(),
        ResearchCommand(),
        StatusCommand(),
    )


__all__ = [
    "ChatCommand",
    "DiagnoseCommand",
    "KeysCommand",
    "LoginCommand",
    "LogoutCommand",
    "LogsCommand",
    "MemoryCommand",
    "MissionsCommand",
    "PasswordChangeCommand",
    "PromptsCommand",
    "ResearchCommand",
    "StatusCommand",
    "builtin_handlers",
]
