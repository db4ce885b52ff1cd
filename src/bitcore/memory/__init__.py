"""Layered memory package."""

from bitcore.memory.models import (
    DEFAULT_LAYER,
    LayerStats,
    MemoryError,
    MemoryErrorCode,
    MemoryLayer,
    MemoryRecord,
    MemoryStats,
    SummaryResult,
    normalize_layer,
)
from bitcore.memory.store import FileMemoryStore

__all__ = [
    "DEFAULT_LAYER",
    "FileMemoryStore",
    "LayerStats",
    "MemoryError",
    "MemoryErrorCode",
    "MemoryLayer",
    "MemoryRecord",
    "MemoryStats",
    "SummaryResult",
    "normalize_layer",
]
