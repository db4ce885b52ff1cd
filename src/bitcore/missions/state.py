"""Durable mission runtime state stored as one JSON document."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from bitcore.missions.errors import MissionError, MissionErrorCode
from bitcore.missions.models import MissionState


class MissionStateStore:
    """JSON-file store for per-mission runtime state."""

    def __init__(self, path: Path) -> None:
        """Create store.

        Args:
            path: State file path (``state.json``).
        """
        self._path = path

    def get(self, mission_id: str) -> MissionState | None:
        """Return stored state for one mission."""
        return self._load().get(mission_id)

    def upsert(self, state: MissionState) -> MissionState:
        """Insert or replace one mission state.

        Returns:
            Persisted state.
        """
        states = self._load()
        states[state.mission_id] = state
        self._save(states)
        return state

    def list_all(self) -> tuple[MissionState, ...]:
        """Return all stored states ordered by mission id."""
        states = self._load()
        return tuple(states[key] for key in sorted(states))

    def _load(self) -> dict[str, MissionState]:
        """Load state mapping.

        Raises:
            MissionError: If the state file is unreadable.
        """
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise TypeError("mission state root must be an object")
            return {
                key: MissionState.model_validate(value) for key, value in raw.items()
            }
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            raise MissionError(
                MissionErrorCode.STATE_UNAVAILABLE,
                "Mission state is unreadable.",
                data={"path": str(self._path)},
            ) from exc

    def _save(self, states: dict[str, MissionState]) -> None:
        """Persist state mapping atomically.

        Raises:
            MissionError: If filesystem persistence fails.
        """
        payload = {key: value.model_dump(mode="json") for key, value in states.items()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self._path.with_name(f"{self._path.name}.tmp")
            temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            temp_path.replace(self._path)
        except OSError as exc:
            raise MissionError(
                MissionErrorCode.STATE_UNAVAILABLE,
                "Mission state is unavailable.",
            ) from exc
