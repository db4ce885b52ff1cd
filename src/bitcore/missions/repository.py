"""Filesystem-backed mission repository."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from bitcore.missions.errors import MissionError, MissionErrorCode
from bitcore.missions.models import MissionDiagnostic, MissionScan, MissionSpec

MISSION_SUFFIXES = (".mission.yaml", ".mission.yml")


def mission_stem(path: Path) -> str:
    """Return the file name with its mission suffix removed."""
    for suffix in MISSION_SUFFIXES:
        if path.name.endswith(suffix):
            return path.name[: -len(suffix)]
    return path.stem


def read_yaml_mapping(path: Path, code: MissionErrorCode, label: str) -> dict[str, Any]:
    """Read a YAML document that must hold a top-level mapping.

    Raises:
        MissionError: With ``code`` when the file is unreadable or not a mapping.
    """
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise MissionError(
            code,
            f"Invalid {label} in '{path.name}'.",
            data={"path": str(path), "reason": str(exc)},
        ) from exc
    if not isinstance(payload, dict):
        raise MissionError(
            code,
            f"Invalid {label} in '{path.name}'.",
            data={"path": str(path), "reason": "expected mapping payload"},
        )
    return payload


class MissionRepository:
    """Load and validate missions from ``*.mission.yaml`` files."""

    def __init__(self, *, missions_dir: Path) -> None:
        self._missions_dir = missions_dir

    @property
    def missions_dir(self) -> Path:
        """Return missions directory root."""
        return self._missions_dir

    def list_missions(self) -> MissionScan:
        """List valid missions with diagnostics for invalid files.

        Returns:
            Repository scan result ordered by priority then id.
        """
        scanned = [self._try_parse(path) for path in self._mission_files()]
        missions = [item for item in scanned if isinstance(item, MissionSpec)]
        diagnostics = [item for item in scanned if isinstance(item, MissionDiagnostic)]
        return MissionScan(
            missions=tuple(sorted(missions, key=lambda item: (-item.priority, item.id))),
            diagnostics=tuple(sorted(diagnostics, key=lambda item: (item.path, item.code))),
        )

    def load(self, mission_id: str) -> MissionSpec:
        """Load one mission by id.

        A file named after the id is checked first, so a broken
        ``<id>.mission.yaml`` reports its own validation error rather than
        "not found". Other files are then searched by their declared id.

        Raises:
            MissionError: If the mission is missing or invalid.
        """
        wanted = mission_id.strip()
        named = [path for path in self._mission_files() if mission_stem(path) == wanted]
        for path in named:
            spec = self.parse(path)
            if spec.id == wanted:
                return spec
        for path in self._mission_files():
            if path in named:
                continue
            found = self._try_parse(path)
            if isinstance(found, MissionSpec) and found.id == wanted:
                return found
        raise MissionError(
            MissionErrorCode.NOT_FOUND,
            f"Mission '{wanted}' not found.",
            data={"mission_id": wanted},
        )

    def parse(self, path: Path) -> MissionSpec:
        """Parse one mission file and validate its schema.

        Raises:
            MissionError: If the file is malformed or fails validation.
        """
        payload = read_yaml_mapping(path, MissionErrorCode.INVALID_SPEC, "mission spec")
        try:
            return MissionSpec.model_validate(payload)
        except ValidationError as exc:
            code = _resolve_validation_code(exc.errors())
            if code == MissionErrorCode.SCHEDULE_INVALID:
                message = f"Invalid schedule for mission spec '{path.name}'."
            else:
                message = f"Invalid mission spec in '{path.name}'."
            raise MissionError(code, message, data={"path": str(path)}) from exc

    def _mission_files(self) -> Iterator[Path]:
        """Yield mission files in the top-level directory, sorted by name.

        Subdirectories such as ``templates/`` are never descended into.
        """
        if not self._missions_dir.is_dir():
            return
        matches = {
            path
            for suffix in MISSION_SUFFIXES
            for path in self._missions_dir.glob(f"*{suffix}")
            if path.is_file()
        }
        yield from sorted(matches)

    def _try_parse(self, path: Path) -> MissionSpec | MissionDiagnostic:
        try:
            return self.parse(path)
        except MissionError as exc:
            return MissionDiagnostic(path=str(path), code=exc.code.value, message=str(exc))


def _resolve_validation_code(errors: Sequence[object]) -> MissionErrorCode:
    """Map pydantic errors to a mission error code."""
    for item in errors:
        if not isinstance(item, dict):
            continue
        loc = item.get("loc")
        if isinstance(loc, tuple) and loc and loc[0] == "schedule":
            return MissionErrorCode.SCHEDULE_INVALID
    return MissionErrorCode.INVALID_SPEC
