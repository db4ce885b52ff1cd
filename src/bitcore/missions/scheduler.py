"""APScheduler runtime running missions on the asyncio loop."""

from __future__ import annotations

from zoneinfo import ZoneInfo

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from bitcore.config.settings import MissionSettings
from bitcore.missions.errors import MissionError, MissionErrorCode
from bitcore.missions.models import MissionSpec
from bitcore.missions.service import MissionService
from bitcore.observability import create_module_logger

_APS_JOB_PREFIX = "mission:"
_LOGGER = create_module_logger("missions.scheduler")


class MissionScheduler:
    """Manage APScheduler lifecycle and mission registration."""

    def __init__(
        self,
        *,
        service: MissionService,
        settings: MissionSettings,
    ) -> None:
        """Create scheduler runtime.

        Args:
            service: Mission service invoked by scheduled jobs.
            settings: Scheduler settings (enable flag, misfire grace).
        """
        self._service = service
        self._settings = settings
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        """Return whether the scheduler is started."""
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> int:
        """Start the scheduler on the running loop and register missions.

        Returns:
            Number of registered missions.

        Raises:
            MissionError: If the scheduler is disabled in settings.
        """
        if not self._settings.scheduler_enabled:
            raise MissionError(
                MissionErrorCode.SCHEDULER_DISABLED,
                "Mission scheduler is disabled (missions.scheduler_enabled=false).",
            )
        if self._scheduler is None:
            scheduler = AsyncIOScheduler(
                timezone=ZoneInfo("UTC"),
                job_defaults={
                    "coalesce": True,
                    "max_instances": 1,
                    "misfire_grace_time": self._settings.misfire_grace_seconds,
                },
            )
            scheduler.add_listener(
                self._handle_event,
                EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
            )
            scheduler.start()
            self._scheduler = scheduler
            _LOGGER.info("Mission scheduler started.")
        return self.refresh()

    def stop(self) -> bool:
        """Shut down the scheduler.

        Returns:
            ``True`` when a running scheduler was stopped.
        """
        if self._scheduler is None:
            return False
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        _LOGGER.info("Mission scheduler stopped.")
        return True

    def refresh(self) -> int:
        """Sync registered jobs with enabled missions.

        Returns:
            Number of registered missions.
        """
        if self._scheduler is None:
            return 0
        missions = tuple(spec for spec in self._service.list().missions if spec.enabled)
        expected = {self._aps_job_id(spec.id) for spec in missions}
        for job in list(self._scheduler.get_jobs()):
            if job.id.startswith(_APS_JOB_PREFIX) and job.id not in expected:
                self._scheduler.remove_job(job.id)
        for spec in missions:
            self._scheduler.add_job(
                self._service.run,
                trigger=_trigger_for(spec),
                args=(spec.id,),
                kwargs={"force": False},
                id=self._aps_job_id(spec.id),
                replace_existing=True,
            )
        return len(missions)

    def status(self) -> dict[str, object]:
        """Return scheduler diagnostics payload."""
        jobs = self._scheduler.get_jobs() if self._scheduler is not None else []
        return {
            "enabled": self._settings.scheduler_enabled,
            "running": self.running,
            "registered": len(jobs),
            "jobs": [
                {
                    "mission_id": job.id.removeprefix(_APS_JOB_PREFIX),
                    "next_run_at": job.next_run_time.isoformat()
                    if job.next_run_time is not None
                    else None,
                }
                for job in sorted(jobs, key=lambda item: item.id)
            ],
        }

    def _handle_event(self, event: JobExecutionEvent) -> None:
        if not event.job_id.startswith(_APS_JOB_PREFIX):
            return
        mission_id = event.job_id.removeprefix(_APS_JOB_PREFIX)
        if event.code == EVENT_JOB_MISSED:
            _LOGGER.warn("Scheduled mission missed.", {"mission_id": mission_id})
        elif event.exception is not None:
            _LOGGER.error(
                "Scheduled mission raised.",
                {"mission_id": mission_id, "error": event.exception},
            )
        else:
            _LOGGER.info("Scheduled mission executed.", {"mission_id": mission_id})

    @staticmethod
    def _aps_job_id(mission_id: str) -> str:
        return f"{_APS_JOB_PREFIX}{mission_id}"


def _trigger_for(spec: MissionSpec) -> BaseTrigger:
    """Build the APScheduler trigger for a mission schedule."""
    schedule = spec.schedule
    zone = ZoneInfo(schedule.timezone)
    if schedule.interval_minutes is not None:
        return IntervalTrigger(minutes=schedule.interval_minutes, timezone=zone)
    return CronTrigger.from_crontab(schedule.cron, timezone=zone)
