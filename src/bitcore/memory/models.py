"""Memory record models and error contracts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MemoryLayer(StrEnum):
    """Supported memory layers."""

    WORKING = "working"
    EPISODIC = "episodic"
    SEMANTIC = "semantic"


DEFAULT_LAYER = MemoryLayer.EPISODIC

LAYER_ALIASES: dict[str, MemoryLayer] = {
    "short": MemoryLayer.WORKING,
    "short-term": MemoryLayer.WORKING,
    "medium": MemoryLayer.EPISODIC,
    "long": MemoryLayer.SEMANTIC,
    "long-term": MemoryLayer.SEMANTIC,
}


class MemoryErrorCode(StrEnum):
    """Stable memory store error codes."""

    INVALID_INPUT = "memory_invalid_input"
    INVALID_LAYER = "memory_invalid_layer"
    STORE_UNAVAILABLE = "memory_store_unavailable"
    SCHEMA_MISMATCH = "memory_schema_mismatch"


_KIND_BY_CODE = {
    MemoryErrorCode.INVALID_INPUT: "input_validation",
    MemoryErrorCode.INVALID_LAYER: "input_validation",
    MemoryErrorCode.STORE_UNAVAILABLE: "server",
    MemoryErrorCode.SCHEMA_MISMATCH: "server",
}


class MemoryError(RuntimeError):  # noqa: A001
    """Memory failure with stable code."""

    def __init__(
        self,
        code: MemoryErrorCode,
        message: str,
        *,
        data: dict[str, object] | None = None,
    ) -> None:
        """Create memory failure.

        Args:
            code: Stable memory error code.
            message: Human-readable error message.
            data: Optional structured payload for diagnostics.
        """
        super().__init__(message)
        self.code = code
        self.kind = _KIND_BY_CODE[code]
        self.data = data or {}


def normalize_layer(value: str | None) -> MemoryLayer:
    """Resolve a layer name or alias.

    Args:
        value: Raw layer input; blank selects the default layer.

    Returns:
        Canonical memory layer.

    Raises:
        MemoryError: If the layer is unknown.
    """
    if value is None or not value.strip():
        return DEFAULT_LAYER
    normalized = value.strip().lower()
    if normalized in LAYER_ALIASES:
        return LAYER_ALIASES[normalized]
    try:
        return MemoryLayer(normalized)
    except ValueError as exc:
        raise MemoryError(
            MemoryErrorCode.INVALID_LAYER,
            f"Unknown memory layer '{value}'.",
            data={"layer": value},
        ) from exc


class MemoryRecord(BaseModel):
    """Persisted memory entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    layer: MemoryLayer
    role: str = "user"
    content: str = Field(min_length=1)
    tags: tuple[str, ...] = ()
    source: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    score: float | None = None


class LayerStats(BaseModel):
    """Usage counters for one memory layer."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    layer: MemoryLayer
    records: int = 0
    stored: int = 0
    retrieved: int = 0
    summarized: int = 0


class MemoryStats(BaseModel):
    """Per-layer usage metrics plus totals."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    layers: tuple[LayerStats, ...]
    totals: dict[str, int]


class SummaryResult(BaseModel):
    """Outcome of a summarize run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    layer: MemoryLayer
    source_count: int
    summary: str
    record: MemoryRecord | None = None
