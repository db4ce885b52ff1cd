"""Mission package."""

from bitcore.missions.errors import MissionError, MissionErrorCode
from bitcore.missions.models import (
    MissionDiagnostic,
    MissionRun,
    MissionScan,
    MissionSchedule,
    MissionSpec,
    MissionState,
    MissionStatus,
)
from bitcore.missions.repository import MissionRepository
from bitcore.missions.scheduler import MissionScheduler
from bitcore.missions.service import MissionService, next_run_after
from bitcore.missions.state import MissionStateStore
from bitcore.missions.templates import (
    MissionTemplate,
    MissionTemplateRepository,
    normalize_template_slug,
)

__all__ = [
    "MissionDiagnostic",
    "MissionError",
    "MissionErrorCode",
    "MissionRepository",
    "MissionRun",
    "MissionScan",
    "MissionSchedule",
    "MissionScheduler",
    "MissionService",
    "MissionSpec",
    "MissionState",
    "MissionStateStore",
    "MissionStatus",
    "MissionTemplate",
    "MissionTemplateRepository",
    "next_run_after",
    "normalize_template_slug",
]
