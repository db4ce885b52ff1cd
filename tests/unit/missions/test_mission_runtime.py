"""Unit tests for mission repository, service, and scheduler runtime."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from bitcore.config.settings import MissionSettings
from bitcore.missions import (
    MissionError,
    MissionErrorCode,
    MissionRepository,
    MissionScheduler,
    MissionService,
    MissionSpec,
    MissionState,
    MissionStateStore,
    MissionStatus,
    MissionTemplateRepository,
    next_run_after,
    normalize_template_slug,
)
from bitcore.missions.service import INTERRUPTED_ERROR, STALE_RUN_ERROR

FIXED_NOW = datetime(2026, 3, 1, 10, 15, tzinfo=UTC)


def _write(path: Path, content: str) -> None:
    """Write utf-8 file content for tests."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _spec(**schedule: Any) -> MissionSpec:
    return MissionSpec.model_validate(
        {"id": "sample", "name": "Sample", "query": "q", "schedule": schedule}
    )


def _service(root: Path, research: Any = None) -> MissionService:
    return MissionService(
        repository=MissionRepository(missions_dir=root / "missions"),
        state_store=MissionStateStore(root / "missions" / "state.json"),
        research=research,
        clock=lambda: FIXED_NOW,
    )


@pytest.mark.unit
def test_next_run_after_interval() -> None:
    """Interval missions are due now until they run, then every interval."""
    # Arrange
    spec = _spec(interval_minutes=30)

    # Act/Assert
    assert next_run_after(spec, None, FIXED_NOW) == FIXED_NOW
    assert next_run_after(spec, FIXED_NOW, FIXED_NOW) == FIXED_NOW + timedelta(minutes=30)


@pytest.mark.unit
def test_next_run_after_cron() -> None:
    """Cron missions fire at the next matching minute."""
    # Arrange
    spec = _spec(cron="0 * * * *")

    # Act
    fire = next_run_after(spec, None, FIXED_NOW)

    # Assert
    assert fire == datetime(2026, 3, 1, 11, 0, tzinfo=UTC)


@pytest.mark.unit
@pytest.mark.parametrize(
    "schedule",
    [
        {},
        {"interval_minutes": 5, "cron": "* * * * *"},
        {"cron": "* * *"},
        {"interval_minutes": 5, "timezone": "Mars/Olympus"},
    ],
)
def test_schedule_validation_rejects_bad_payloads(schedule: dict[str, Any]) -> None:
    """Schedules need exactly one valid trigger and a real timezone."""
    # Act/Assert
    with pytest.raises(ValueError):
        _spec(**schedule)


@pytest.mark.unit
def test_repository_reports_diagnostics_and_orders_by_priority(tmp_path: Path) -> None:
    """Valid missions sort by priority; invalid files become diagnostics."""
    # Arrange - two valid missions and two broken files
    missions_dir = tmp_path / "missions"
    _write(
        missions_dir / "low.mission.yaml",
        "id: low\nname: Low\nquery: q\npriority: 1\nschedule:\n  interval_minutes: 5\n",
    )
    _write(
        missions_dir / "high.mission.yaml",
        "id: high\nname: High\nquery: q\npriority: 9\nschedule:\n  interval_minutes: 5\n",
    )
    _write(missions_dir / "list.mission.yaml", "- not\n- a mapping\n")
    _write(
        missions_dir / "sched.mission.yaml",
        "id: sched\nname: S\nquery: q\nschedule:\n  interval_minutes: 0\n",
    )
    repository = MissionRepository(missions_dir=missions_dir)

    # Act
    scan = repository.list_missions()

    # Assert
    assert [spec.id for spec in scan.missions] == ["high", "low"]
    codes = {Path(item.path).name: item.code for item in scan.diagnostics}
    assert codes == {
        "list.mission.yaml": MissionErrorCode.INVALID_SPEC.value,
        "sched.mission.yaml": MissionErrorCode.SCHEDULE_INVALID.value,
    }


@pytest.mark.unit
def test_repository_load_raises_for_broken_file(tmp_path: Path) -> None:
    """Loading a broken mission by its file name surfaces the parse error."""
    # Arrange
    _write(tmp_path / "missions" / "bad.mission.yaml", "id: bad\nname: [unclosed\n")
    repository = MissionRepository(missions_dir=tmp_path / "missions")

    # Act/Assert
    with pytest.raises(MissionError) as excinfo:
        repository.load("bad")
    assert excinfo.value.code == MissionErrorCode.INVALID_SPEC
    assert excinfo.value.kind == "input_validation"


@pytest.mark.unit
def test_repository_load_finds_missions_by_declared_id(tmp_path: Path) -> None:
    """Ids are resolved from file content; `.yml` files count, subdirectories do not."""
    # Arrange
    root = tmp_path / "missions"
    _write(
        root / "weekly.mission.yml",
        "id: digest\nname: Digest\nquery: q\nschedule:\n  interval_minutes: 5\n",
    )
    _write(root / "broken.mission.yaml", "id: [\n")
    _write(
        root / "templates" / "nested.mission.yaml",
        "id: nested\nname: N\nquery: q\nschedule:\n  interval_minutes: 5\n",
    )
    repository = MissionRepository(missions_dir=root)

    # Act
    spec = repository.load(" digest ")

    # Assert
    assert spec.name == "Digest"
    with pytest.raises(MissionError) as excinfo:
        repository.load("nested")
    assert excinfo.value.code == MissionErrorCode.NOT_FOUND


@pytest.mark.unit
def test_service_run_requires_engine(tmp_path: Path) -> None:
    """Running without a research engine is a server-side failure."""
    # Arrange
    _write(
        tmp_path / "missions" / "m.mission.yaml",
        "id: m\nname: M\nquery: q\nschedule:\n  interval_minutes: 5\n",
    )
    service = _service(tmp_path)

    # Act/Assert
    with pytest.raises(MissionError) as excinfo:
        asyncio.run(service.run("m"))
    assert excinfo.value.code == MissionErrorCode.ENGINE_MISSING
    assert excinfo.value.kind == "server"


@pytest.mark.unit
def test_service_scheduled_run_skips_disabled(tmp_path: Path, research_engine: Any) -> None:
    """Disabled missions only run when forced."""
    # Arrange
    _write(
        tmp_path / "missions" / "paused.mission.yaml",
        "id: paused\nname: Paused\nquery: q\nenabled: false\nschedule:\n  interval_minutes: 5\n",
    )
    service = _service(tmp_path, research_engine)

    # Act
    with pytest.raises(MissionError) as excinfo:
        asyncio.run(service.run("paused", force=False))
    forced = asyncio.run(service.run("paused"))

    # Assert
    assert excinfo.value.code == MissionErrorCode.DISABLED
    assert forced.status == MissionStatus.SUCCEEDED
    assert service.due() == ()


@pytest.mark.unit
def test_service_records_failed_runs(tmp_path: Path, research_engine: Any) -> None:
    """Engine errors are recorded on state instead of raised."""
    # Arrange
    _write(
        tmp_path / "missions" / "m.mission.yaml",
        "id: m\nname: M\nquery: q\nschedule:\n  interval_minutes: 15\n",
    )
    research_engine.fail = True
    service = _service(tmp_path, research_engine)

    # Act
    run = asyncio.run(service.run("m"))

    # Assert
    state = service.state("m")
    assert run.status == MissionStatus.FAILED
    assert run.error == "engine exploded"
    assert state.status == MissionStatus.FAILED
    assert state.last_error == "engine exploded"
    assert state.run_count == 1
    assert state.next_run_at == FIXED_NOW + timedelta(minutes=15)


@pytest.mark.unit
def test_state_store_rejects_corrupt_file(tmp_path: Path) -> None:
    """Corrupt state files raise a stable error."""
    # Arrange
    path = tmp_path / "state.json"
    path.write_text("[1, 2]", encoding="utf-8")

    # Act/Assert
    with pytest.raises(MissionError) as excinfo:
        MissionStateStore(path).get("m")
    assert excinfo.value.code == MissionErrorCode.STATE_UNAVAILABLE


@pytest.mark.unit
def test_scheduler_registers_enabled_missions(tmp_path: Path, research_engine: Any) -> None:
    """Starting the scheduler registers one APS job per enabled mission."""
    # Arrange - one enabled and one disabled mission
    _write(
        tmp_path / "missions" / "active.mission.yaml",
        "id: active\nname: Active\nquery: q\nschedule:\n  cron: '*/5 * * * *'\n",
    )
    _write(
        tmp_path / "missions" / "paused.mission.yaml",
        "id: paused\nname: Paused\nquery: q\nenabled: false\nschedule:\n  interval_minutes: 5\n",
    )
    scheduler = MissionScheduler(
        service=_service(tmp_path, research_engine),
        settings=MissionSettings(scheduler_enabled=True, misfire_grace_seconds=30),
    )

    async def _scenario() -> tuple[int, dict[str, object], bool]:
        registered = scheduler.start()
        status = scheduler.status()
        stopped = scheduler.stop()
        return registered, status, stopped

    # Act
    registered, status, stopped = asyncio.run(_scenario())

    # Assert
    assert registered == 1
    assert status["running"] is True
    assert [job["mission_id"] for job in status["jobs"]] == ["active"]  # type: ignore[attr-defined]
    assert stopped is True
    assert scheduler.running is False


@pytest.mark.unit
def test_scheduler_disabled_refuses_start(tmp_path: Path) -> None:
    """A disabled scheduler raises a stable error on start."""
    # Arrange
    scheduler = MissionScheduler(service=_service(tmp_path), settings=MissionSettings())

    # Act/Assert
    with pytest.raises(MissionError) as excinfo:
        scheduler.start()
    assert excinfo.value.code == MissionErrorCode.SCHEDULER_DISABLED
    assert scheduler.stop() is False


class _CancelledEngine:
    """Research engine whose run is cancelled mid-flight."""

    async def run(self, request: Any, telemetry: Any) -> Any:
        raise asyncio.CancelledError


@pytest.mark.unit
def test_cancelled_run_is_recorded_and_rescheduled(tmp_path: Path) -> None:
    """A cancelled run leaves FAILED state and becomes due again."""
    # Arrange
    _write(
        tmp_path / "missions" / "m.mission.yaml",
        "id: m\nname: M\nquery: q\nschedule:\n  interval_minutes: 15\n",
    )
    service = _service(tmp_path, _CancelledEngine())

    # Act
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(service.run("m"))

    # Assert
    state = service.state("m")
    assert state.status == MissionStatus.FAILED
    assert state.last_error == INTERRUPTED_ERROR
    assert state.running_since is None
    assert state.next_run_at == FIXED_NOW + timedelta(minutes=15)
    later = FIXED_NOW + timedelta(minutes=16)
    assert [spec.id for spec in service.due(later)] == ["m"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "running_since",
    [None, FIXED_NOW - timedelta(hours=2)],
)
def test_due_abandons_stale_running_state(
    tmp_path: Path, running_since: datetime | None
) -> None:
    """A RUNNING state left behind by a dead process is failed and rerun."""
    # Arrange
    _write(
        tmp_path / "missions" / "m.mission.yaml",
        "id: m\nname: M\nquery: q\nschedule:\n  interval_minutes: 15\n",
    )
    service = _service(tmp_path)
    MissionStateStore(tmp_path / "missions" / "state.json").upsert(
        MissionState(
            mission_id="m",
            status=MissionStatus.RUNNING,
            next_run_at=FIXED_NOW - timedelta(minutes=5),
            running_since=running_since,
        )
    )

    # Act
    due = service.due()

    # Assert
    assert [spec.id for spec in due] == ["m"]
    state = service.state("m")
    assert state.status == MissionStatus.FAILED
    assert state.last_error == STALE_RUN_ERROR
    assert state.running_since is None


@pytest.mark.unit
def test_due_skips_recent_running_state(tmp_path: Path) -> None:
    """A run that started recently is still treated as in flight."""
    # Arrange
    _write(
        tmp_path / "missions" / "m.mission.yaml",
        "id: m\nname: M\nquery: q\nschedule:\n  interval_minutes: 15\n",
    )
    service = _service(tmp_path)
    MissionStateStore(tmp_path / "missions" / "state.json").upsert(
        MissionState(
            mission_id="m",
            status=MissionStatus.RUNNING,
            next_run_at=FIXED_NOW - timedelta(minutes=5),
            running_since=FIXED_NOW - timedelta(minutes=10),
        )
    )

    # Act
    due = service.due()

    # Assert
    assert due == ()
    assert service.state("m").status == MissionStatus.RUNNING


@pytest.mark.unit
def test_template_repository_skips_broken_files(tmp_path: Path) -> None:
    """Unreadable templates are left out of the listing but fail when loaded."""
    # Arrange
    templates_dir = tmp_path / "missions" / "templates"
    _write(
        templates_dir / "Weekly Digest.mission.yml",
        "name: Weekly\nquery: q\nschedule:\n  interval_minutes: 60\n",
    )
    _write(templates_dir / "broken.mission.yaml", "name: [\n")
    repository = MissionTemplateRepository(templates_dir=templates_dir)

    # Act
    listed = repository.list_templates()

    # Assert
    assert [item.slug for item in listed] == ["weekly-digest"]
    assert repository.get("Weekly Digest.mission").name == "Weekly"
    with pytest.raises(MissionError) as excinfo:
        repository.get("broken")
    assert excinfo.value.code == MissionErrorCode.TEMPLATE_INVALID


@pytest.mark.unit
def test_template_slug_rejects_empty_values() -> None:
    """Slugs must keep at least one letter or digit."""
    # Act/Assert
    assert normalize_template_slug("  Release Notes!  ") == "release-notes"
    with pytest.raises(MissionError) as excinfo:
        normalize_template_slug("---")
    assert excinfo.value.code == MissionErrorCode.TEMPLATE_INVALID


@pytest.mark.unit
def test_service_exposes_templates_beside_missions(tmp_path: Path) -> None:
    """The service keeps templates in a subdirectory of the missions root."""
    # Act
    service = _service(tmp_path)

    # Assert
    assert service.templates.templates_dir == tmp_path / "missions" / "templates"
