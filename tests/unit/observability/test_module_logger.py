"""Unit tests for module loggers and metadata cloning."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from bitcore.observability import (
    LogChannel,
    clone_meta,
    create_module_logger,
    is_debug_mode,
    set_debug_mode,
)


@pytest.mark.unit
def test_debug_entries_require_debug_mode(
    channel: LogChannel, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Debug entries are dropped unless debug mode is on."""
    # Arrange
    monkeypatch.delenv("DEBUG_MODE", raising=False)
    logger = create_module_logger("tests.debug", emit_to_std_streams=False, channel=channel)

    # Act
    suppressed = logger.debug("hidden")
    set_debug_mode(True)
    recorded = logger.debug("visible")

    # Assert
    assert suppressed is None
    assert recorded is not None
    assert [entry.message for entry in channel.snapshot()] == ["visible"]


@pytest.mark.unit
def test_debug_mode_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without an override the DEBUG_MODE variable decides."""
    # Arrange
    monkeypatch.setenv("DEBUG_MODE", "TRUE")

    # Act/Assert
    assert is_debug_mode() is True
    set_debug_mode(False)
    assert is_debug_mode() is False


@pytest.mark.unit
def test_child_and_with_meta_merge_metadata(channel: LogChannel) -> None:
    """Child sources are suffixed and base metadata merges with call metadata."""
    # Arrange
    logger = create_module_logger(
        "tests.parent", emit_to_std_streams=False, base_meta={"a": 1}, channel=channel
    )

    # Act
    entry = logger.child("worker").with_meta({"b": 2}).info("hello", {"b": 3, "c": 4})

    # Assert
    assert entry is not None
    assert entry.source == "tests.parent:worker"
    assert entry.meta == {"a": 1, "b": 3, "c": 4}


@pytest.mark.unit
def test_blank_source_defaults_to_server(channel: LogChannel) -> None:
    """Loggers without a source report as the server."""
    # Act
    entry = create_module_logger("  ", emit_to_std_streams=False, channel=channel).warn("x")

    # Assert
    assert entry is not None
    assert entry.source == "server"


@pytest.mark.unit
def test_entries_are_mirrored_to_stdlib_logging(
    channel: LogChannel, caplog: pytest.LogCaptureFixture
) -> None:
    """Std-stream loggers also write through the logging module."""
    # Arrange
    logger = create_module_logger("tests.mirror", channel=channel)

    # Act
    with caplog.at_level(logging.INFO, logger="tests.mirror"):
        logger.warn("mirrored warning")

    # Assert
    assert [(record.name, record.levelno) for record in caplog.records] == [
        ("tests.mirror", logging.WARNING)
    ]
    assert caplog.records[0].getMessage() == "mirrored warning"


@pytest.mark.unit
def test_clone_meta_handles_cycles_functions_and_errors() -> None:
    """Cloning produces JSON-friendly snapshots."""
    # Arrange
    payload: dict[str, Any] = {"name": "x", "items": (1, 2)}
    payload["self"] = payload

    def handler() -> None:
        return None

    # Act
    cloned = clone_meta({"payload": payload, "fn": handler, "err": KeyError("k")})

    # Assert
    assert cloned["payload"]["self"] == "[Circular]"
    assert cloned["payload"]["items"] == [1, 2]
    assert cloned["fn"] == {"type": "function", "name": "handler"}
    assert cloned["err"] == {"name": "KeyError", "message": "'k'", "stack": None}


@pytest.mark.unit
def test_clone_meta_is_a_snapshot() -> None:
    """Later mutation of the source does not leak into the clone."""
    # Arrange
    source = {"tags": ["a"]}

    # Act
    cloned = clone_meta(source)
    source["tags"].append("b")

    # Assert
    assert cloned == {"tags": ["a"]}
