"""YAML-file prompt repository."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from bitcore.prompts.models import (
    PromptError,
    PromptErrorCode,
    PromptRecord,
    PromptSummary,
    normalize_prompt_id,
)

DEFAULT_LIST_LIMIT = 50


def _normalize_tags(tags: Iterable[str] | None) -> set[str]:
    return {tag.strip().lower() for tag in tags or () if tag.strip()}


class PromptRepository:
    """Store prompts as ``<id>.prompt.yaml`` files."""

    def __init__(self, *, prompts_dir: Path) -> None:
        """Store repository location.

        Args:
            prompts_dir: Prompts directory root.
        """
        self._prompts_dir = prompts_dir

    def list(
        self,
        *,
        tags: Iterable[str] | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> tuple[PromptSummary, ...]:
        """List prompts ordered by most recent update.

        Args:
            tags: Only prompts carrying every listed tag.
            limit: Max entries returned.

        Returns:
            Prompt summaries.
        """
        wanted = _normalize_tags(tags)
        records = [
            record
            for record in self._load_all()
            if wanted <= {tag.lower() for tag in record.tags}
        ]
        ordered = sorted(records, key=lambda item: (item.updated_at, item.id), reverse=True)
        return tuple(_summary(record) for record in ordered[: max(1, limit)])

    def get(self, prompt_id: str) -> PromptRecord:
        """Load one prompt.

        Raises:
            PromptError: If the prompt is missing or invalid.
        """
        normalized = normalize_prompt_id(prompt_id)
        path = self._path(normalized)
        if not path.exists():
            raise PromptError(
                PromptErrorCode.NOT_FOUND,
                f"Prompt '{normalized}' not found.",
                data={"id": normalized},
            )
        return self._parse(path)

    def exists(self, prompt_id: str) -> bool:
        """Return whether a prompt file exists for the id."""
        return self._path(normalize_prompt_id(prompt_id)).exists()

    def save(  # noqa: PLR0913
        self,
        prompt_id: str,
        *,
        body: str,
        title: str | None = None,
        description: str | None = None,
        tags: Iterable[str] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> PromptRecord:
        """Create or update one prompt.

        Args:
            prompt_id: Prompt slug.
            body: Prompt text.
            title: Display title (defaults to existing title or the id).
            description: Optional description.
            tags: Optional tag list (existing tags kept when ``None``).
            metadata: Optional metadata (existing kept when ``None``).

        Returns:
            Persisted record.

        Raises:
            PromptError: If input is invalid or persistence fails.
        """
        normalized = normalize_prompt_id(prompt_id)
        now = datetime.now(UTC)
        existing = self.get(normalized) if self.exists(normalized) else None
        payload = {
            "id": normalized,
            "title": title or (existing.title if existing else normalized),
            "body": body,
            "description": description
            if description is not None
            else (existing.description if existing else None),
            "tags": tuple(tags) if tags is not None else (existing.tags if existing else ()),
            "metadata": dict(metadata)
            if metadata is not None
            else (existing.metadata if existing else {}),
            "created_at": existing.created_at if existing else now,
            "updated_at": now,
        }
        try:
            record = PromptRecord.model_validate(payload)
        except ValidationError as exc:
            raise PromptError(
                PromptErrorCode.INVALID_RECORD,
                f"Invalid prompt '{normalized}': body and title are required.",
                data={"id": normalized},
            ) from exc
        self._write(record)
        return record

    def delete(self, prompt_id: str) -> None:
        """Delete one prompt.

        Raises:
            PromptError: If the prompt is missing.
        """
        normalized = normalize_prompt_id(prompt_id)
        path = self._path(normalized)
        if not path.exists():
            raise PromptError(
                PromptErrorCode.NOT_FOUND,
                f"Prompt '{normalized}' not found.",
                data={"id": normalized},
            )
        path.unlink()

    def search(
        self,
        query: str,
        *,
        tags: Iterable[str] | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        include_body: bool = False,
    ) -> tuple[PromptSummary, ...]:
        """Case-insensitive search over id, title, description, tags and body.

        Args:
            query: Search text.
            tags: Only prompts carrying every listed tag.
            limit: Max entries returned.
            include_body: Include prompt bodies in summaries.

        Returns:
            Matching summaries ordered by most recent update.
        """
        needle = query.strip().lower()
        wanted = _normalize_tags(tags)
        matches: list[PromptRecord] = []
        for record in self._load_all():
            if not wanted <= {tag.lower() for tag in record.tags}:
                continue
            haystack = " ".join(
                [record.id, record.title, record.description or "", *record.tags, record.body]
            ).lower()
            if needle in haystack:
                matches.append(record)
        ordered = sorted(matches, key=lambda item: (item.updated_at, item.id), reverse=True)
        return tuple(
            _summary(record, include_body=include_body)
            for record in ordered[: max(1, limit)]
        )

    def _path(self, prompt_id: str) -> Path:
        return self._prompts_dir / f"{prompt_id}.prompt.yaml"

    def _load_all(self) -> list[PromptRecord]:
        if not self._prompts_dir.exists():
            return []
        return [self._parse(path) for path in sorted(self._prompts_dir.glob("*.prompt.yaml"))]

    def _parse(self, path: Path) -> PromptRecord:
        """Parse one prompt file.

        Raises:
            PromptError: If the file is malformed.
        """
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
            return PromptRecord.model_validate(payload)
        except (OSError, yaml.YAMLError, ValidationError) as exc:
            raise PromptError(
                PromptErrorCode.INVALID_RECORD,
                f"Invalid prompt file '{path.name}'.",
                data={"path": str(path)},
            ) from exc

    def _write(self, record: PromptRecord) -> None:
        """Persist one prompt atomically.

        Raises:
            PromptError: If filesystem persistence fails.
        """
        path = self._path(record.id)
        try:
            self._prompts_dir.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_name(f"{path.name}.tmp")
            temp_path.write_text(
                yaml.safe_dump(record.model_dump(mode="json"), sort_keys=False),
                encoding="utf-8",
            )
            temp_path.replace(path)
        except OSError as exc:
            raise PromptError(
                PromptErrorCode.STORE_UNAVAILABLE,
                "Prompt store is unavailable.",
            ) from exc


def _summary(record: PromptRecord, *, include_body: bool = False) -> PromptSummary:
    return PromptSummary(
        id=record.id,
        title=record.title,
        description=record.description,
        tags=record.tags,
        updated_at=record.updated_at,
        body=record.body if include_body else None,
    )
