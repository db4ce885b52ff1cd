"""Handler for `/missions`: mission catalogue and scheduler runtime."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from bitcore.commands.context import CommandContext, flag_enabled
from bitcore.commands.errors import InputValidationError
from bitcore.commands.handlers._support import format_timestamp, require_service, split_csv
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult
from bitcore.missions import (
    MissionError,
    MissionErrorCode,
    MissionRun,
    MissionScheduler,
    MissionService,
    MissionStatus,
    MissionTemplate,
    MissionTemplateRepository,
    normalize_template_slug,
)


def _run_line(run: MissionRun) -> str:
    if run.status == MissionStatus.SUCCEEDED:
        return f"Mission {run.mission_id} succeeded: {run.summary or 'no summary'}"
    return f"Mission {run.mission_id} {run.status.value}: {run.error or 'unknown error'}"


class MissionsCommand:
    """Inspect, run, and schedule research missions."""

    name = "missions"
    aliases = ("mission",)
    actions = ("list", "inspect", "run", "tick", "status", "start", "stop", "templates")
    default_action = "list"

    def help(self) -> str:
        """Return help block."""
        return "\n".join(
            [
                help_line("/missions inspect <id>", "Show one mission spec and state."),
                help_line("/missions list", "List missions with schedule and state."),
                help_line("/missions run <id>", "Run a mission now."),
                help_line("/missions start|stop", "Start or stop the mission scheduler."),
                help_line("/missions status", "Show scheduler status."),
                help_line("/missions tick", "Run every due mission once."),
                help_line("/missions templates list", "List reusable mission templates."),
                help_line("/missions templates show <slug>", "Show one template."),
                help_line(
                    "/missions templates save <slug>",
                    "Create or update a template [--name --query --interval-minutes --cron "
                    "--timezone --tags --priority --enabled --from-file].",
                ),
                help_line("/missions templates delete <slug>", "Delete a template."),
            ]
        )

    async def execute(self, context: CommandContext) -> CommandResult:
        """Route to the requested action."""
        service = require_service(
            context.services.missions, "Mission service is not configured."
        )
        action = context.action or self.default_action
        if action == "inspect":
            return self._inspect(context, service)
        if action == "run":
            return await self._run(context, service)
        if action == "tick":
            return await self._tick(context, service)
        if action == "templates":
            return self._templates(context, service.templates)
        if action in {"status", "start", "stop"}:
            scheduler = require_service(
                context.services.scheduler, "Mission scheduler is not configured."
            )
            return self._scheduler(context, scheduler, action)
        return self._list(context, service)

    def _list(self, context: CommandContext, service: MissionService) -> CommandResult:
        if context.positional_args:
            raise InputValidationError(
                f"Unknown /missions action '{context.positional_args[0]}'.",
                hint="Run /help missions for usage.",
            )
        scan = service.list()
        states = {state.mission_id: state for state in service.states()}
        missions: list[dict[str, Any]] = []
        for spec in scan.missions:
            state = states.get(spec.id)
            missions.append(
                {
                    **spec.model_dump(mode="json"),
                    "state": state.model_dump(mode="json") if state else None,
                }
            )
        diagnostics = [item.model_dump(mode="json") for item in scan.diagnostics]
        payload = {"missions": missions, "diagnostics": diagnostics}
        if context.json_output:
            context.output(payload)
            return CommandResult.ok(data=payload)

        if not scan.missions:
            context.output("No missions defined.")
        for spec in scan.missions:
            state = states.get(spec.id)
            flag = "enabled" if spec.enabled else "disabled"
            status = state.status.value if state else MissionStatus.IDLE.value
            next_run = format_timestamp(state.next_run_at if state else None)
            context.output(
                f"{spec.id} [{flag}] {spec.schedule.describe()} status={status} next={next_run}"
            )
        for item in scan.diagnostics:
            context.output(f"Warning: {item.path}: {item.message}")
        return CommandResult.ok(data=payload)

    def _inspect(self, context: CommandContext, service: MissionService) -> CommandResult:
        mission_id = self._mission_id(context, "inspect")
        spec = service.get(mission_id)
        state = service.state(mission_id)
        payload = {
            "mission": spec.model_dump(mode="json"),
            "state": state.model_dump(mode="json"),
        }
        if context.json_output:
            context.output(payload)
            return CommandResult.ok(data=payload)
        context.output(f"--- Mission {spec.id} ---")
        context.output(f"Name: {spec.name}")
        context.output(f"Query: {spec.query}")
        context.output(f"Schedule: {spec.schedule.describe()}")
        context.output(f"Enabled: {spec.enabled}")
        context.output(f"Priority: {spec.priority}")
        context.output(f"Tags: {', '.join(spec.tags) if spec.tags else 'none'}")
        context.output(f"Status: {state.status.value} (runs: {state.run_count})")
        context.output(f"Last run: {format_timestamp(state.last_run_at)}")
        context.output(f"Next run: {format_timestamp(state.next_run_at)}")
        if state.last_error:
            context.output(f"Last error: {state.last_error}")
        return CommandResult.ok(data=payload)

    async def _run(self, context: CommandContext, service: MissionService) -> CommandResult:
        mission_id = self._mission_id(context, "run")
        context.output(f"Running mission {mission_id}...")
        run = await service.run(mission_id, telemetry=context.telemetry)
        payload = {"run": run.model_dump(mode="json")}
        if context.json_output:
            context.output(payload)
        else:
            context.output(_run_line(run))
        if run.status != MissionStatus.SUCCEEDED:
            return CommandResult.failure(
                run.error or f"Mission {mission_id} failed.", handled=False, data=payload
            )
        return CommandResult.ok(data=payload)

    async def _tick(self, context: CommandContext, service: MissionService) -> CommandResult:
        runs = await service.tick()
        payload = {"runs": [run.model_dump(mode="json") for run in runs]}
        if context.json_output:
            context.output(payload)
        elif not runs:
            context.output("No missions are due.")
        else:
            for run in runs:
                context.output(_run_line(run))
        return CommandResult.ok(data=payload)

    def _scheduler(
        self, context: CommandContext, scheduler: MissionScheduler, action: str
    ) -> CommandResult:
        if action == "start":
            context.require_admin()
            registered = scheduler.start()
            context.output(f"Mission scheduler running with {registered} mission(s).")
        elif action == "stop":
            context.require_admin()
            stopped = scheduler.stop()
            context.output(
                "Mission scheduler stopped." if stopped else "Mission scheduler was not running."
            )
        status = scheduler.status()
        if context.json_output or action == "status":
            if context.json_output:
                context.output(status)
            else:
                state = "running" if status["running"] else "stopped"
                context.output(
                    f"Scheduler: {state} (enabled={status['enabled']}, "
                    f"registered={status['registered']})"
                )
                for job in status["jobs"]:
                    context.output(f"  {job['mission_id']} next={job['next_run_at'] or 'n/a'}")
        return CommandResult.ok(data={"scheduler": status})

    def _templates(
        self, context: CommandContext, repository: MissionTemplateRepository
    ) -> CommandResult:
        args = context.positional_args
        sub = args[0].lower() if args else "list"
        slug = args[1] if len(args) > 1 else context.flag("slug")
        if sub == "list":
            return self._template_list(context, repository)
        if sub in {"show", "get", "inspect"}:
            template = repository.get(self._template_slug(slug, sub))
            return self._template_show(context, template)
        if sub in {"save", "upsert"}:
            return self._template_save(context, repository, slug)
        if sub in {"delete", "remove"}:
            deleted = repository.delete(self._template_slug(slug, sub))
            if context.json_output:
                context.output({"deleted": deleted})
            else:
                context.output(f"Template '{deleted}' deleted.")
            return CommandResult.ok(data={"deleted": deleted})
        raise InputValidationError(
            f"Unknown /missions templates action '{sub}'.",
            hint="Usage: /missions templates list|show|save|delete",
        )

    def _template_list(
        self, context: CommandContext, repository: MissionTemplateRepository
    ) -> CommandResult:
        templates = repository.list_templates()
        payload = {"templates": [item.model_dump(mode="json") for item in templates]}
        if context.json_output:
            context.output(payload)
        elif not templates:
            context.output("No mission templates available.")
        else:
            for item in templates:
                context.output(
                    f"{item.slug} :: {item.name} | {item.schedule.describe()} "
                    f"| tags={', '.join(item.tags) or 'none'}"
                )
        return CommandResult.ok(data=payload)

    def _template_show(self, context: CommandContext, template: MissionTemplate) -> CommandResult:
        payload = {"template": template.model_dump(mode="json")}
        if context.json_output:
            context.output(payload)
            return CommandResult.ok(data=payload)
        context.output(f"{template.slug} :: {template.name}")
        if template.description:
            context.output(f"  Description: {template.description}")
        context.output(f"  Query: {template.query}")
        context.output(f"  Schedule: {template.schedule.describe()}")
        context.output(f"  Priority: {template.priority}")
        context.output(f"  Tags: {', '.join(template.tags) or 'none'}")
        context.output(f"  Enabled: {template.enabled}")
        return CommandResult.ok(data=payload)

    def _template_save(
        self,
        context: CommandContext,
        repository: MissionTemplateRepository,
        slug: str | None,
    ) -> CommandResult:
        name = context.flag("name")
        raw_slug = slug or name
        if not raw_slug:
            raise InputValidationError(
                "Template slug is required.",
                hint="Usage: /missions templates save <slug> --name=<name> --query=<query>",
            )
        normalized = normalize_template_slug(raw_slug)
        try:
            existing: MissionTemplate | None = repository.get(normalized)
        except MissionError as exc:
            if exc.code != MissionErrorCode.TEMPLATE_NOT_FOUND:
                raise
            existing = None
        template = repository.save(_template_from_flags(context, normalized, existing))
        payload = {"template": template.model_dump(mode="json"), "created": existing is None}
        if context.json_output:
            context.output(payload)
        else:
            context.output(
                f"Template '{template.slug}' saved ({template.schedule.describe()})."
            )
        return CommandResult.ok(data=payload)

    @staticmethod
    def _template_slug(slug: str | None, action: str) -> str:
        if not slug:
            raise InputValidationError(
                "Template slug is required.",
                hint=f"Usage: /missions templates {action} <slug>",
            )
        return slug

    @staticmethod
    def _mission_id(context: CommandContext, action: str) -> str:
        if not context.positional_args:
            raise InputValidationError(
                "Mission id is required.", hint=f"Usage: /missions {action} <id>"
            )
        return context.positional_args[0].lower()


def _template_from_flags(
    context: CommandContext, slug: str, existing: MissionTemplate | None
) -> MissionTemplate:
    """Merge ``--from-file`` content and flags over an existing template.

    Raises:
        InputValidationError: If the merged draft is incomplete or invalid.
    """
    draft: dict[str, Any] = existing.model_dump(exclude_none=True) if existing else {}
    source = context.flag("from-file") or context.flag("source")
    if source:
        draft.update(_read_template_file(Path(source).expanduser()))
    draft.pop("id", None)
    draft["slug"] = slug
    for field in ("name", "query", "description"):
        value = context.flag(field)
        if value is not None:
            draft[field] = value
    draft["schedule"] = _schedule_from_flags(context, draft.get("schedule"))
    tags = split_csv(context.flags.get("tags"))
    if tags:
        draft["tags"] = tags
    for field in ("priority", "depth", "breadth"):
        value = context.flag(field)
        if value is not None:
            draft[field] = value
    if "enabled" in context.flags:
        draft["enabled"] = flag_enabled(context.flags["enabled"])
    if not draft.get("name") or not draft.get("query"):
        raise InputValidationError(
            "Template save requires --name and --query or a file that defines them."
        )
    try:
        return MissionTemplate.model_validate(draft)
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
        raise InputValidationError(
            f"Invalid mission template '{slug}'.",
            hint=f"Check: {', '.join(fields) or 'schedule'}",
        ) from exc


def _schedule_from_flags(context: CommandContext, current: Any) -> dict[str, Any]:
    schedule = dict(current) if isinstance(current, dict) else {}
    timezone = schedule.get("timezone", "UTC")
    interval = context.flag("interval-minutes") or context.flag("interval")
    cron = context.flag("cron")
    if interval is not None and cron is not None:
        raise InputValidationError("Use either --interval-minutes or --cron, not both.")
    if interval is not None:
        schedule = {"interval_minutes": interval, "timezone": timezone}
    elif cron is not None:
        schedule = {"cron": cron, "timezone": timezone}
    override = context.flag("timezone")
    if override:
        schedule["timezone"] = override
    if "interval_minutes" not in schedule and "cron" not in schedule:
        raise InputValidationError(
            "Template save requires a schedule.",
            hint="Pass --interval-minutes=<n> or --cron='<expr>', or include one in the file.",
        )
    return schedule


def _read_template_file(path: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise InputValidationError(f"Cannot read template file '{path}'.") from exc
    if not isinstance(payload, dict):
        raise InputValidationError(f"Template file '{path}' must contain a mapping.")
    return payload
