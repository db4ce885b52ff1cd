"""Reusable mission drafts stored as YAML files under ``missions/templates``."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bitcore.missions.errors import MissionError, MissionErrorCode
from bitcore.missions.models import MissionSchedule
from bitcore.missions.repository import MISSION_SUFFIXES, mission_stem, read_yaml_mapping
from bitcore.observability import create_module_logger
from bitcore.research.ports import DEFAULT_BREADTH, DEFAULT_DEPTH

_LOGGER = create_module_logger("missions.templates")
_SLUG_JUNK = re.compile(r"[^a-z0-9]+")


def normalize_template_slug(value: str) -> str:
    """Lowercase a template name or file stem into a dash-separated slug.

    Raises:
        MissionError: If nothing usable remains.
    """
    lowered = value.strip().lower().removesuffix(".mission").removesuffix(".template")
    slug = _SLUG_JUNK.sub("-", lowered).strip("-")
    if not slug:
        raise MissionError(
            MissionErrorCode.TEMPLATE_INVALID,
            "Template slug must contain letters or digits.",
            data={"slug": value},
        )
    return slug


class MissionTemplate(BaseModel):
    """Mission draft without an id; the slug comes from the file name."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    slug: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    query: str = Field(min_length=1)
    schedule: MissionSchedule
    enabled: bool = True
    tags: tuple[str, ...] = ()
    priority: int = Field(default=5, ge=0, le=10)
    depth: int = Field(default=DEFAULT_DEPTH, ge=1, le=5)
    breadth: int = Field(default=DEFAULT_BREADTH, ge=1, le=5)


class MissionTemplateRepository:
    """List, read, save, and delete ``<slug>.mission.yaml`` templates."""

    def __init__(self, *, templates_dir: Path) -> None:
        self._templates_dir = templates_dir

    @property
    def templates_dir(self) -> Path:
        """Return templates directory."""
        return self._templates_dir

    def list_templates(self) -> tuple[MissionTemplate, ...]:
        """Return readable templates ordered by slug.

        Broken files are skipped with a warning so one bad draft does not
        hide the rest.
        """
        templates: list[MissionTemplate] = []
        for path in self._template_files():
            try:
                templates.append(self._parse(path))
            except MissionError as exc:
                _LOGGER.warn(
                    "Skipping unreadable mission template.",
                    {"path": str(path), "error": exc},
                )
        return tuple(sorted(templates, key=lambda item: item.slug))

    def get(self, slug: str) -> MissionTemplate:
        """Load one template by slug.

        Raises:
            MissionError: If the template is missing or invalid.
        """
        return self._parse(self._existing_path(normalize_template_slug(slug)))

    def save(self, template: MissionTemplate) -> MissionTemplate:
        """Write a template, replacing any file that already holds its slug.

        Raises:
            MissionError: If persistence fails.
        """
        slug = normalize_template_slug(template.slug)
        record = template.model_copy(update={"slug": slug})
        path = self._find(slug) or self._templates_dir / f"{slug}{MISSION_SUFFIXES[0]}"
        document = record.model_dump(mode="json", exclude={"slug"}, exclude_none=True)
        try:
            self._templates_dir.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_name(f"{path.name}.tmp")
            temp_path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as exc:
            raise MissionError(
                MissionErrorCode.TEMPLATE_STORE_UNAVAILABLE,
                "Mission template store is unavailable.",
                data={"path": str(path)},
            ) from exc
        _LOGGER.info("Mission template saved.", {"slug": slug})
        return record

    def delete(self, slug: str) -> str:
        """Remove one template file and return its slug.

        Raises:
            MissionError: If the template is missing.
        """
        normalized = normalize_template_slug(slug)
        self._existing_path(normalized).unlink()
        _LOGGER.info("Mission template deleted.", {"slug": normalized})
        return normalized

    def _template_files(self) -> list[Path]:
        if not self._templates_dir.is_dir():
            return []
        return sorted(
            path
            for suffix in MISSION_SUFFIXES
            for path in self._templates_dir.glob(f"*{suffix}")
            if path.is_file()
        )

    def _find(self, slug: str) -> Path | None:
        for path in self._template_files():
            if normalize_template_slug(mission_stem(path)) == slug:
                return path
        return None

    def _existing_path(self, slug: str) -> Path:
        path = self._find(slug)
        if path is None:
            raise MissionError(
                MissionErrorCode.TEMPLATE_NOT_FOUND,
                f"Mission template '{slug}' not found.",
                data={"slug": slug},
            )
        return path

    def _parse(self, path: Path) -> MissionTemplate:
        payload: dict[str, Any] = read_yaml_mapping(
            path, MissionErrorCode.TEMPLATE_INVALID, "mission template"
        )
        payload.pop("slug", None)
        payload.pop("id", None)
        try:
            return MissionTemplate.model_validate(
                {**payload, "slug": normalize_template_slug(mission_stem(path))}
            )
        except ValidationError as exc:
            raise MissionError(
                MissionErrorCode.TEMPLATE_INVALID,
                f"Invalid mission template in '{path.name}'.",
                data={"path": str(path)},
            ) from exc
