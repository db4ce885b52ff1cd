"""Terminal session models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from bitcore.config.settings import Role


class TerminalMode(StrEnum):
    """Input modes a terminal session can be in."""

    COMMAND = "command"
    CHAT = "chat"


class MessageRole(StrEnum):
    """Supported chat transcript roles."""

    USER = "user"
    SYSTEM = "system"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """Single chat transcript event."""

    model_config = ConfigDict(extra="forbid")

    role: MessageRole
    content: str


class CurrentUser(BaseModel):
    """Resolved operator identity."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    username: str = "operator"
    role: Role = Role.ADMIN

    @property
    def is_admin(self) -> bool:
        """Return whether the user holds the admin role."""
        return self.role == Role.ADMIN


class TerminalSession(BaseModel):
    """Connection-scoped state shared across dispatches.

    Only the fields declared here may be set; assigning anything else raises.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    session_id: str = Field(default_factory=lambda: str(uuid4()))
    current_user: CurrentUser | None = None
    mode: TerminalMode = TerminalMode.COMMAND
    chat_active: bool = False
    chat_messages: list[Message] = Field(default_factory=list)
    chat_model: str | None = None
    chat_character: str | None = None
    memory_enabled: bool = False
    memory_layer: str | None = None
    credentials: dict[str, str] = Field(default_factory=dict)
    csrf_token: str | None = None
    last_research: dict[str, Any] | None = None

    def reset_chat(self) -> None:
        """Leave chat mode and drop the transcript."""
        self.chat_active = False
        self.chat_messages = []
        self.mode = TerminalMode.COMMAND
