"""File-backed layered memory store."""

from __future__ import annotations

import json
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from bitcore.memory.models import (
    LayerStats,
    MemoryError,
    MemoryErrorCode,
    MemoryLayer,
    MemoryRecord,
    MemoryStats,
    SummaryResult,
    normalize_layer,
)
from bitcore.observability import create_module_logger

_LOGGER = create_module_logger("memory.store")
_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
MAX_RECALL_LIMIT = 50
SUMMARY_SOURCE_LIMIT = 20
SUMMARY_SENTENCES = 3


def _tokens(text: str) -> set[str]:
    return set(_TOKEN_PATTERN.findall(text.lower()))


class FileMemoryStore:
    """Persist memory records as one JSON file per layer."""

    def __init__(self, *, root_dir: Path) -> None:
        """Create memory store.

        Args:
            root_dir: Directory holding ``<layer>.json`` files.
        """
        self._root_dir = root_dir
        self._counters: dict[MemoryLayer, Counter[str]] = {
            layer: Counter() for layer in MemoryLayer
        }

    @property
    def root_dir(self) -> Path:
        """Return storage directory."""
        return self._root_dir

    def store(  # noqa: PLR0913
        self,
        content: str,
        *,
        layer: str | None = None,
        role: str = "user",
        tags: Iterable[str] = (),
        source: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> MemoryRecord:
        """Persist one memory record.

        Args:
            content: Memory text.
            layer: Layer name or alias (default episodic).
            role: Transcript role that produced the memory.
            tags: Free-form tags.
            source: Optional origin label.
            metadata: Optional structured metadata.

        Returns:
            Stored record.

        Raises:
            MemoryError: If content is blank or persistence fails.
        """
        normalized = content.strip()
        if not normalized:
            raise MemoryError(MemoryErrorCode.INVALID_INPUT, "Memory content is required.")
        target = normalize_layer(layer)
        record = MemoryRecord(
            id=str(uuid4()),
            layer=target,
            role=role.strip() or "user",
            content=normalized,
            tags=tuple(tag.strip() for tag in tags if tag.strip()),
            source=source,
            metadata=dict(metadata or {}),
            timestamp=datetime.now(UTC),
        )
        records = self._load(target)
        records.append(record)
        self._save(target, records)
        self._counters[target]["stored"] += 1
        _LOGGER.debug("Memory stored.", {"layer": target.value, "id": record.id})
        return record

    def recall(
        self,
        query: str,
        *,
        layer: str | None = None,
        limit: int = 5,
    ) -> tuple[MemoryRecord, ...]:
        """Return records ranked by token overlap with ``query``.

        Args:
            query: Free-text query.
            layer: Optional layer restriction; all layers when absent.
            limit: Max results (clamped to 1..50).

        Returns:
            Scored records, best first.

        Raises:
            MemoryError: If the query is blank.
        """
        wanted = _tokens(query)
        if not wanted:
            raise MemoryError(MemoryErrorCode.INVALID_INPUT, "Memory recall requires a query.")
        layers = (normalize_layer(layer),) if layer else tuple(MemoryLayer)
        bounded = max(1, min(limit, MAX_RECALL_LIMIT))
        scored: list[MemoryRecord] = []
        for target in layers:
            for record in self._load(target):
                overlap = len(wanted & _tokens(record.content))
                if overlap:
                    score = round(overlap / len(wanted), 4)
                    scored.append(record.model_copy(update={"score": score}))
        ranked = sorted(
            scored,
            key=lambda item: (-(item.score or 0.0), -item.timestamp.timestamp()),
        )[:bounded]
        for record in ranked:
            self._counters[record.layer]["retrieved"] += 1
        return tuple(ranked)

    def stats(self, *, layer: str | None = None) -> MemoryStats:
        """Return usage counters per layer plus totals."""
        layers = (normalize_layer(layer),) if layer else tuple(MemoryLayer)
        snapshots = tuple(
            LayerStats(
                layer=target,
                records=len(self._load(target)),
                stored=self._counters[target]["stored"],
                retrieved=self._counters[target]["retrieved"],
                summarized=self._counters[target]["summarized"],
            )
            for target in layers
        )
        totals = {
            "layers": len(snapshots),
            "records": sum(item.records for item in snapshots),
            "stored": sum(item.stored for item in snapshots),
            "retrieved": sum(item.retrieved for item in snapshots),
            "summarized": sum(item.summarized for item in snapshots),
        }
        return MemoryStats(layers=snapshots, totals=totals)

    def summarize(
        self,
        *,
        layer: str | None = None,
        conversation: str | None = None,
    ) -> SummaryResult:
        """Build an extractive summary and persist it to the semantic layer.

        Args:
            layer: Layer whose recent records are summarized.
            conversation: Explicit text to summarize instead of stored records.

        Returns:
            Summary outcome; ``record`` is ``None`` when there was nothing to
            summarize.
        """
        target = normalize_layer(layer)
        if conversation and conversation.strip():
            sources = [conversation.strip()]
        else:
            recent = sorted(self._load(target), key=lambda item: item.timestamp)
            sources = [item.content for item in recent[-SUMMARY_SOURCE_LIMIT:]]
        summary = _extract_summary(sources)
        if not summary:
            return SummaryResult(layer=target, source_count=0, summary="")
        record = self.store(
            summary,
            layer=MemoryLayer.SEMANTIC.value,
            role="system",
            tags=("summary",),
            source="summarize",
            metadata={"from_layer": target.value, "source_count": len(sources)},
        )
        self._counters[target]["summarized"] += 1
        return SummaryResult(
            layer=target,
            source_count=len(sources),
            summary=summary,
            record=record,
        )

    def _path(self, layer: MemoryLayer) -> Path:
        return self._root_dir / f"{layer.value}.json"

    def _load(self, layer: MemoryLayer) -> list[MemoryRecord]:
        """Load records for one layer.

        Raises:
            MemoryError: If the payload is unreadable or invalid.
        """
        path = self._path(layer)
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MemoryError(
                MemoryErrorCode.STORE_UNAVAILABLE,
                f"Memory layer '{layer.value}' is unreadable.",
            ) from exc
        if not isinstance(raw, list):
            raise MemoryError(
                MemoryErrorCode.SCHEMA_MISMATCH,
                f"Memory layer '{layer.value}' payload must be a list.",
            )
        try:
            return [MemoryRecord.model_validate(item) for item in raw]
        except ValidationError as exc:
            raise MemoryError(
                MemoryErrorCode.SCHEMA_MISMATCH,
                f"Memory layer '{layer.value}' contains invalid records.",
            ) from exc

    def _save(self, layer: MemoryLayer, records: list[MemoryRecord]) -> None:
        """Persist records atomically.

        Raises:
            MemoryError: If filesystem persistence fails.
        """
        path = self._path(layer)
        try:
            self._root_dir.mkdir(parents=True, exist_ok=True)
            payload = [record.model_dump(mode="json") for record in records]
            temp_path = path.with_suffix(".tmp")
            temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            temp_path.replace(path)
        except OSError as exc:
            raise MemoryError(
                MemoryErrorCode.STORE_UNAVAILABLE,
                f"Memory layer '{layer.value}' is unavailable.",
            ) from exc


def _extract_summary(sources: list[str]) -> str:
    """Pick the first distinct sentences across sources."""
    seen: set[str] = set()
    picked: list[str] = []
    for text in sources:
        for sentence in _SENTENCE_SPLIT.split(text.strip()):
            cleaned = " ".join(sentence.split())
            key = cleaned.lower()
            if not cleaned or key in seen:
                continue
            seen.add(key)
            picked.append(cleaned)
            if len(picked) >= SUMMARY_SENTENCES:
                return " ".join(picked)
    return " ".join(picked)
