"""Handler for `/research`: run the research engine with telemetry."""

from __future__ import annotations

from bitcore.commands.context import CommandContext
from bitcore.commands.errors import InputValidationError
from bitcore.commands.handlers._support import int_flag, require_service
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult
from bitcore.research.ports import DEFAULT_BREADTH, DEFAULT_DEPTH, ResearchRequest


class ResearchCommand:
    """Run one research query."""

    name = "research"
    aliases: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    default_action = None

    def help(self) -> str:
        """Return help block."""
        return help_line(
            "/research <query>",
            f"Run deep research [--depth=1-5 (default {DEFAULT_DEPTH}) "
            f"--breadth=1-5 (default {DEFAULT_BREADTH})].",
        )

    async def execute(self, context: CommandContext) -> CommandResult:
        """Run the engine and keep the report on the session.

        Args:
            context: Command context.

        Returns:
            Success result carrying the report.

        Raises:
            InputValidationError: If the query is missing or flags are invalid.
            UpstreamServerError: If no research engine is configured.
        """
        query = context.flag("query") or " ".join(context.positional_args)
        if not query.strip():
            raise InputValidationError(
                "A research query is required.", hint="Usage: /research <query>"
            )
        engine = require_service(
            context.services.research, "Research engine is not configured."
        )
        request = ResearchRequest(
            query=query.strip(),
            depth=int_flag(context, "depth", DEFAULT_DEPTH, minimum=1, maximum=5),
            breadth=int_flag(context, "breadth", DEFAULT_BREADTH, minimum=1, maximum=5),
            username=context.current_user.username,
        )
        telemetry = context.telemetry
        if telemetry is not None:
            telemetry.clear_history()
            telemetry.emit_status("starting", f"Researching: {request.query}")
        context.output(
            f"Starting research (depth={request.depth}, breadth={request.breadth})..."
        )
        try:
            report = await engine.run(request, telemetry)
        except Exception as exc:
            if telemetry is not None:
                telemetry.emit_complete(success=False, error=str(exc))
            raise

        payload = report.model_dump(mode="json")
        context.session.last_research = payload
        if telemetry is not None:
            telemetry.emit_complete(
                success=True,
                summary=report.summary,
                learnings=list(report.learnings),
                sources=list(report.sources),
            )
        if context.json_output:
            context.output(payload)
        else:
            context.output("--- Research Summary ---")
            context.output(report.summary)
            if report.learnings:
                context.output("Key learnings:")
                for learning in report.learnings:
                    context.output(f"- {learning}")
            if report.sources:
                context.output("Sources:")
                for source in report.sources:
                    context.output(f"- {source}")
        return CommandResult.ok(data={"report": payload})
