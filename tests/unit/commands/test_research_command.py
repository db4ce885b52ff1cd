"""Unit tests for the `/research` handler."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from bitcore.commands.context import CommandServices
from bitcore.commands.types import CommandResult
from bitcore.research.telemetry import TelemetryChannel
from bitcore.session.models import TerminalSession

RunLine = Callable[..., tuple[CommandResult, Any]]


@pytest.mark.unit
def test_research_streams_telemetry_and_keeps_report(
    run_line: RunLine, session: TerminalSession, research_engine: Any
) -> None:
    """A run emits status, thought and complete frames and stores the report."""
    # Arrange
    frames: list[dict[str, Any]] = []
    telemetry = TelemetryChannel(frames.append)

    # Act
    result, capture = run_line("/research asyncio internals --depth=3", telemetry=telemetry)

    # Assert
    assert result.success
    assert [frame["type"] for frame in frames] == [
        "research-status",
        "research-thought",
        "research-complete",
    ]
    assert frames[-1]["data"]["success"] is True
    assert frames[-1]["data"]["summary"] == "Summary of asyncio internals"
    assert research_engine.requests[0].depth == 3
    assert research_engine.requests[0].username == "operator"
    assert session.last_research is not None
    assert session.last_research["query"] == "asyncio internals"
    assert "--- Research Summary ---" in capture.outputs
    assert "- first learning" in capture.outputs


@pytest.mark.unit
def test_research_failure_completes_unsuccessfully(
    run_line: RunLine, research_engine: Any
) -> None:
    """Engine errors publish a failed completion and one error line."""
    # Arrange
    research_engine.fail = True
    frames: list[dict[str, Any]] = []

    # Act
    result, capture = run_line(
        "/research doomed query", telemetry=TelemetryChannel(frames.append)
    )

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [unknown]: engine exploded"]
    assert frames[-1]["type"] == "research-complete"
    assert frames[-1]["data"]["success"] is False
    assert frames[-1]["data"]["error"] == "engine exploded"


@pytest.mark.unit
def test_research_requires_query(run_line: RunLine) -> None:
    """An empty query is an input error."""
    # Act
    result, capture = run_line("/research")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [input_validation]: A research query is required."]


@pytest.mark.unit
def test_research_depth_out_of_range(run_line: RunLine) -> None:
    """Depth is bounded to 1..5."""
    # Act
    result, capture = run_line("/research topic --depth=9")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [input_validation]: --depth must be between 1 and 5."]


@pytest.mark.unit
def test_research_without_engine_is_server_error(
    run_line: RunLine, services: CommandServices
) -> None:
    """A missing engine is reported as a server error."""
    # Arrange
    services.research = None

    # Act
    result, capture = run_line("/research topic")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [server]: Research engine is not configured."]
