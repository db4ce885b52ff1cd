"""Unit tests for the `/memory` handler."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from bitcore.commands.context import CommandServices
from bitcore.commands.types import CommandResult

RunLine = Callable[..., tuple[CommandResult, Any]]


@pytest.mark.unit
def test_memory_store_quoted_text_with_tags(run_line: RunLine) -> None:
    """Quoted content and CSV tags are persisted on one record."""
    # Act
    result, capture = run_line('/memory store "hello world" --tags=a,b')

    # Assert
    record = result.data["record"]
    assert record["content"] == "hello world"
    assert record["tags"] == ["a", "b"]
    assert record["layer"] == "episodic"
    assert record["metadata"] == {"user": "operator"}
    assert capture.outputs == [f"Stored memory {record['id']} in episodic."]


@pytest.mark.unit
def test_memory_recall_ranks_matches(run_line: RunLine) -> None:
    """Recall returns scored records for overlapping queries."""
    # Arrange
    run_line('/memory store "python asyncio tips"')
    run_line('/memory store "gardening notes" --layer=long')

    # Act
    result, _ = run_line("/mem recall asyncio python --json")

    # Assert
    memories = result.data["memories"]
    assert [item["content"] for item in memories] == ["python asyncio tips"]
    assert memories[0]["score"] == 1.0


@pytest.mark.unit
def test_memory_recall_requires_query(run_line: RunLine) -> None:
    """Recall without a query is an input error."""
    # Act
    result, capture = run_line("/memory recall")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [input_validation]: A query is required."]


@pytest.mark.unit
def test_memory_store_unknown_layer(run_line: RunLine) -> None:
    """Unknown layers surface the store's validation error."""
    # Act
    result, capture = run_line("/memory store note --layer=cosmic")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [input_validation]: Unknown memory layer 'cosmic'."]


@pytest.mark.unit
def test_memory_stats_default_action(run_line: RunLine) -> None:
    """Bare `/memory` reports per-layer counters."""
    # Arrange
    run_line("/memory store first note")

    # Act
    result, capture = run_line("/memory")

    # Assert
    stats = result.data["stats"]
    assert stats["totals"]["records"] == 1
    assert [layer["layer"] for layer in stats["layers"]] == ["working", "episodic", "semantic"]
    assert capture.outputs[0] == "--- Memory Statistics ---"


@pytest.mark.unit
def test_memory_summarize_writes_semantic_record(
    run_line: RunLine, services: CommandServices
) -> None:
    """Summaries are stored on the semantic layer."""
    # Arrange
    run_line('/memory store "The build passed. Deploy is pending."')

    # Act
    result, _ = run_line("/memory summarize")

    # Assert
    summary = result.data["summary"]
    assert summary["summary"] == "The build passed. Deploy is pending."
    assert summary["record"]["layer"] == "semantic"
    assert services.memory is not None
    assert services.memory.stats(layer="semantic").totals["records"] == 1


@pytest.mark.unit
def test_memory_summarize_empty_layer(run_line: RunLine) -> None:
    """Nothing stored means nothing summarized."""
    # Act
    result, capture = run_line("/memory summarize --layer=working")

    # Assert
    assert result.data["summary"]["record"] is None
    assert capture.outputs == ["Nothing to summarize in working."]


@pytest.mark.unit
def test_memory_without_store_is_server_error(
    run_line: RunLine, services: CommandServices
) -> None:
    """A missing memory store is reported as a server error."""
    # Arrange
    services.memory = None

    # Act
    result, capture = run_line("/memory")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [server]: Memory store is not configured."]
