"""Unit tests for `/status`, `/login`, `/logout`, and `/password-change`."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from bitcore.commands.types import CommandResult
from bitcore.session.models import TerminalMode, TerminalSession

RunLine = Callable[..., tuple[CommandResult, Any]]


@pytest.mark.unit
def test_status_json_payload(run_line: RunLine, storage_dir: Any) -> None:
    """`/status --json` reports identity, keys, and collaborators."""
    # Act
    result, capture = run_line("/status --json")

    # Assert
    status = result.data["status"]
    assert status["user"] == "operator"
    assert status["role"] == "admin"
    assert status["mode"] == "command"
    assert status["storage"] == str(storage_dir)
    assert status["keys"] == {"brave": False, "venice": False, "github": False}
    assert status["github"] is False
    assert status["research"] is True
    assert status["chat"] is True
    assert status["scheduler"] is False
    assert capture.outputs == [status]


@pytest.mark.unit
def test_status_text_lines(run_line: RunLine) -> None:
    """Plain `/status` renders a readable summary."""
    # Act
    _, capture = run_line("/status")

    # Assert
    assert capture.outputs[0] == "--- Status ---"
    assert "User: operator (admin)" in capture.outputs
    assert "Mission scheduler: stopped" in capture.outputs


@pytest.mark.unit
def test_status_rejects_extra_arguments(run_line: RunLine) -> None:
    """Stray positionals are reported."""
    # Act
    result, capture = run_line("/status now")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [input_validation]: Unknown /status action 'now'."]


@pytest.mark.unit
def test_logout_resets_chat_state(run_line: RunLine, session: TerminalSession) -> None:
    """`/logout` leaves chat mode and clears cached research."""
    # Arrange
    run_line("/chat")
    session.last_research = {"query": "old"}

    # Act
    result, _ = run_line("/logout")

    # Assert
    assert result.success
    assert session.mode == TerminalMode.COMMAND
    assert session.chat_active is False
    assert session.last_research is None
    assert result.mode_change is not None
    assert result.mode_change.prompt == "> "


@pytest.mark.unit
@pytest.mark.parametrize("line", ["/password-change", "/password"])
def test_password_change_is_not_applicable(run_line: RunLine, line: str) -> None:
    """Password changes are a no-op in single-user mode."""
    # Act
    result, capture = run_line(line)

    # Assert
    assert result.success
    assert capture.outputs == ["Password changes are not applicable in single-user mode."]
