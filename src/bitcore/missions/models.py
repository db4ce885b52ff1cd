"""Mission spec and runtime models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bitcore.research.ports import DEFAULT_BREADTH, DEFAULT_DEPTH


class MissionSchedule(BaseModel):
    """Recurring schedule: fixed interval or cron expression."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    interval_minutes: int | None = Field(default=None, ge=1)
    cron: str | None = None
    timezone: str = "UTC"

    @model_validator(mode="after")
    def _validate_schedule(self) -> MissionSchedule:
        """Require exactly one of interval or cron with a valid timezone.

        Returns:
            Validated schedule.

        Raises:
            ValueError: If schedule payload is invalid.
        """
        if (self.interval_minutes is None) == (self.cron is None):
            raise ValueError("schedule must declare exactly one of interval_minutes or cron.")
        if self.cron is not None and len(self.cron.split()) != 5:  # noqa: PLR2004
            raise ValueError("cron schedule must have five fields.")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError("schedule timezone is invalid.") from exc
        return self

    def describe(self) -> str:
        """Return short human description."""
        if self.interval_minutes is not None:
            return f"every {self.interval_minutes} min"
        return f"cron '{self.cron}' ({self.timezone})"


class MissionSpec(BaseModel):
    """Validated mission spec loaded from yaml."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    name: str = Field(min_length=1)
    query: str = Field(min_length=1)
    schedule: MissionSchedule
    enabled: bool = True
    tags: tuple[str, ...] = ()
    priority: int = Field(default=5, ge=0, le=10)
    depth: int = Field(default=DEFAULT_DEPTH, ge=1, le=5)
    breadth: int = Field(default=DEFAULT_BREADTH, ge=1, le=5)


class MissionDiagnostic(BaseModel):
    """Non-fatal repository scan diagnostic for one mission file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    code: str
    message: str


class MissionScan(BaseModel):
    """Repository listing payload for missions plus scan diagnostics."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    missions: tuple[MissionSpec, ...] = ()
    diagnostics: tuple[MissionDiagnostic, ...] = ()


class MissionStatus(StrEnum):
    """Runtime status of one mission."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class MissionState(BaseModel):
    """Persisted runtime state for one mission."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mission_id: str
    status: MissionStatus = MissionStatus.IDLE
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    last_error: str | None = None
    run_count: int = 0
    running_since: datetime | None = None


class MissionRun(BaseModel):
    """Outcome of one mission execution."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mission_id: str
    status: MissionStatus
    started_at: datetime
    ended_at: datetime
    summary: str | None = None
    error: str | None = None
