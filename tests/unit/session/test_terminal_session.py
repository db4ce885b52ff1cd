"""Unit tests for terminal session state."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from bitcore.config import Role
from bitcore.session.models import CurrentUser, Message, MessageRole, TerminalMode, TerminalSession


@pytest.mark.unit
def test_session_defaults() -> None:
    """New sessions start in command mode with no user bound."""
    # Act
    session = TerminalSession()

    # Assert
    assert session.mode == TerminalMode.COMMAND
    assert session.current_user is None
    assert session.chat_messages == []
    assert session.session_id != TerminalSession().session_id


@pytest.mark.unit
def test_session_rejects_undeclared_fields() -> None:
    """Arbitrary attributes cannot be attached to a session."""
    # Arrange
    session = TerminalSession()

    # Act/Assert
    with pytest.raises(ValueError):
        session.favourite_colour = "blue"  # type: ignore[attr-defined]


@pytest.mark.unit
def test_session_validates_assignment() -> None:
    """Declared fields are validated on assignment."""
    # Arrange
    session = TerminalSession()

    # Act/Assert
    with pytest.raises(ValidationError):
        session.mode = "sideways"  # type: ignore[assignment]


@pytest.mark.unit
def test_reset_chat_returns_to_command_mode() -> None:
    """Leaving chat drops the transcript."""
    # Arrange
    session = TerminalSession(
        mode=TerminalMode.CHAT,
        chat_active=True,
        chat_messages=[Message(role=MessageRole.USER, content="hi")],
    )

    # Act
    session.reset_chat()

    # Assert
    assert session.mode == TerminalMode.COMMAND
    assert session.chat_active is False
    assert session.chat_messages == []


@pytest.mark.unit
def test_current_user_admin_flag() -> None:
    """Only the admin role counts as admin."""
    # Act/Assert
    assert CurrentUser().is_admin is True
    assert CurrentUser(role=Role.CLIENT).is_admin is False
