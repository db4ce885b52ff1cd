"""Mission execution service built on the research engine port."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger

from bitcore.missions.errors import MissionError, MissionErrorCode
from bitcore.missions.models import (
    MissionRun,
    MissionScan,
    MissionSpec,
    MissionState,
    MissionStatus,
)
from bitcore.missions.repository import MissionRepository
from bitcore.missions.state import MissionStateStore
from bitcore.missions.templates import MissionTemplateRepository
from bitcore.observability import create_module_logger
from bitcore.research.ports import ResearchEngine, ResearchRequest
from bitcore.research.telemetry import TelemetryChannel

_LOGGER = create_module_logger("missions.service")

DEFAULT_STALE_AFTER = timedelta(hours=1)
INTERRUPTED_ERROR = "Mission run was interrupted."
STALE_RUN_ERROR = "Mission run did not finish; marked as abandoned."


def _utc_now() -> datetime:
    return datetime.now(tz=UTC).replace(microsecond=0)


def next_run_after(spec: MissionSpec, last_run_at: datetime | None, now: datetime) -> datetime:
    """Compute the next due time for a mission.

    Interval missions that never ran are due immediately; cron missions fire
    at the next matching time after the last run (or after ``now``).

    Args:
        spec: Mission spec.
        last_run_at: Last execution time, if any.
        now: Current time.

    Returns:
        Next due time in UTC.
    """
    schedule = spec.schedule
    if schedule.interval_minutes is not None:
        if last_run_at is None:
            return now
        return last_run_at + timedelta(minutes=schedule.interval_minutes)
    trigger = CronTrigger.from_crontab(schedule.cron, timezone=ZoneInfo(schedule.timezone))
    base = last_run_at + timedelta(seconds=1) if last_run_at is not None else now
    fire = trigger.get_next_fire_time(None, base)
    return fire.astimezone(UTC)


class MissionService:
    """List, inspect, run, and tick missions."""

    def __init__(
        self,
        *,
        repository: MissionRepository,
        state_store: MissionStateStore,
        research: ResearchEngine | None = None,
        clock: Callable[[], datetime] = _utc_now,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        templates: MissionTemplateRepository | None = None,
    ) -> None:
        """Create mission service.

        Args:
            repository: Mission spec repository.
            state_store: Runtime state store.
            research: Research engine executing mission queries.
            clock: UTC clock.
            stale_after: Age after which a run still marked running is
                treated as abandoned.
            templates: Template repository; defaults to ``templates/`` under
                the missions directory.
        """
        self._repository = repository
        self._state_store = state_store
        self._research = research
        self._clock = clock
        self._stale_after = stale_after
        self._templates = templates or MissionTemplateRepository(
            templates_dir=repository.missions_dir / "templates"
        )

    @property
    def templates(self) -> MissionTemplateRepository:
        """Return the mission template repository."""
        return self._templates

    def list(self) -> MissionScan:
        """Return mission scan with diagnostics."""
        return self._repository.list_missions()

    def get(self, mission_id: str) -> MissionSpec:
        """Return one mission spec.

        Raises:
            MissionError: If the mission is missing or invalid.
        """
        return self._repository.load(mission_id)

    def state(self, mission_id: str) -> MissionState:
        """Return runtime state, computing ``next_run_at`` when unknown."""
        spec = self.get(mission_id)
        return self._state_for(spec)

    def states(self) -> tuple[MissionState, ...]:
        """Return runtime state for every valid mission."""
        return tuple(self._state_for(spec) for spec in self.list().missions)

    def due(self, now: datetime | None = None) -> tuple[MissionSpec, ...]:
        """Return enabled missions whose next run time has passed."""
        moment = now or self._clock()
        due: list[MissionSpec] = []
        for spec in self.list().missions:
            if not spec.enabled:
                continue
            state = self._state_for(spec)
            if state.status == MissionStatus.RUNNING:
                if not self._is_stale(state, moment):
                    continue
                state = self._abandon(state)
            if state.next_run_at is not None and state.next_run_at <= moment:
                due.append(spec)
        return tuple(due)

    async def run(
        self,
        mission_id: str,
        *,
        telemetry: TelemetryChannel | None = None,
        force: bool = True,
    ) -> MissionRun:
        """Execute one mission through the research engine.

        Args:
            mission_id: Mission id.
            telemetry: Optional progress channel.
            force: Run even when the mission is disabled.

        Returns:
            Run outcome; engine failures are recorded, not raised.

        Raises:
            MissionError: If the mission is missing, disabled, or no engine exists.
        """
        spec = self.get(mission_id)
        if not spec.enabled and not force:
            raise MissionError(
                MissionErrorCode.DISABLED,
                f"Mission '{spec.id}' is disabled.",
                data={"mission_id": spec.id},
            )
        if self._research is None:
            raise MissionError(
                MissionErrorCode.ENGINE_MISSING,
                "Research engine is not configured.",
            )
        previous = self._state_for(spec)
        started = self._clock()
        self._state_store.upsert(
            previous.model_copy(
                update={"status": MissionStatus.RUNNING, "running_since": started}
            )
        )
        _LOGGER.info("Mission started.", {"mission_id": spec.id})
        request = ResearchRequest(
            query=spec.query,
            depth=spec.depth,
            breadth=spec.breadth,
            metadata={"mission_id": spec.id},
        )
        try:
            report = await self._research.run(request, telemetry)
        except Exception as exc:  # noqa: BLE001
            ended = self._clock()
            self._record(spec, previous, MissionStatus.FAILED, started, error=str(exc))
            _LOGGER.error("Mission failed.", {"mission_id": spec.id, "error": exc})
            return MissionRun(
                mission_id=spec.id,
                status=MissionStatus.FAILED,
                started_at=started,
                ended_at=ended,
                error=str(exc) or type(exc).__name__,
            )
        except BaseException:
            self._record(
                spec, previous, MissionStatus.FAILED, started, error=INTERRUPTED_ERROR
            )
            _LOGGER.warn("Mission interrupted.", {"mission_id": spec.id})
            raise
        ended = self._clock()
        self._record(spec, previous, MissionStatus.SUCCEEDED, started)
        _LOGGER.info("Mission completed.", {"mission_id": spec.id})
        return MissionRun(
            mission_id=spec.id,
            status=MissionStatus.SUCCEEDED,
            started_at=started,
            ended_at=ended,
            summary=report.summary,
        )

    async def tick(self, now: datetime | None = None) -> tuple[MissionRun, ...]:
        """Run every due mission once, sequentially."""
        runs: list[MissionRun] = []
        for spec in self.due(now):
            runs.append(await self.run(spec.id))
        return tuple(runs)

    def _state_for(self, spec: MissionSpec) -> MissionState:
        stored = self._state_store.get(spec.id)
        state = stored or MissionState(mission_id=spec.id)
        if state.next_run_at is None:
            state = state.model_copy(
                update={"next_run_at": next_run_after(spec, state.last_run_at, self._clock())}
            )
            self._state_store.upsert(state)
        return state

    def _record(
        self,
        spec: MissionSpec,
        previous: MissionState,
        status: MissionStatus,
        started: datetime,
        *,
        error: str | None = None,
    ) -> None:
        self._state_store.upsert(
            previous.model_copy(
                update={
                    "status": status,
                    "last_run_at": started,
                    "next_run_at": next_run_after(spec, started, started),
                    "last_error": error,
                    "run_count": previous.run_count + 1,
                    "running_since": None,
                }
            )
        )

    def _is_stale(self, state: MissionState, moment: datetime) -> bool:
        if state.running_since is None:
            return True
        return moment - state.running_since >= self._stale_after

    def _abandon(self, state: MissionState) -> MissionState:
        abandoned = state.model_copy(
            update={
                "status": MissionStatus.FAILED,
                "last_error": STALE_RUN_ERROR,
                "running_since": None,
            }
        )
        self._state_store.upsert(abandoned)
        _LOGGER.warn("Stale mission run abandoned.", {"mission_id": state.mission_id})
        return abandoned
