"""Handler for `/prompts`: file-backed prompt library."""

from __future__ import annotations

from bitcore.commands.context import CommandContext, flag_enabled
from bitcore.commands.errors import InputValidationError
from bitcore.commands.handlers._support import int_flag, require_service, split_csv
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult
from bitcore.prompts.models import PromptSummary
from bitcore.prompts.repository import DEFAULT_LIST_LIMIT, PromptRepository

MAX_LIST_LIMIT = 200


def _summary_line(summary: PromptSummary) -> str:
    tags = f" [{', '.join(summary.tags)}]" if summary.tags else ""
    return f"{summary.id}: {summary.title}{tags}"


class PromptsCommand:
    """Create, read, search, and delete stored prompts."""

    name = "prompts"
    aliases = ("prompt",)
    actions = ("list", "get", "save", "delete", "exists", "search")
    default_action = "list"

    def help(self) -> str:
        """Return help block."""
        return "\n".join(
            [
                help_line("/prompts delete <id>", "Delete a prompt."),
                help_line("/prompts exists <id>", "Check whether a prompt exists."),
                help_line("/prompts get <id>", "Show one prompt."),
                help_line("/prompts list", "List prompts [--tags --limit --json]."),
                help_line(
                    "/prompts save <id> <text>",
                    "Create or update a prompt [--body --title --description --tags].",
                ),
                help_line("/prompts search <query>", "Search prompts [--tags --limit --body]."),
            ]
        )

    async def execute(self, context: CommandContext) -> CommandResult:
        """Route to the requested action."""
        repository = require_service(
            context.services.prompts, "Prompt repository is not configured."
        )
        action = context.action or self.default_action
        if action == "get":
            return self._get(context, repository)
        if action == "save":
            return self._save(context, repository)
        if action == "delete":
            return self._delete(context, repository)
        if action == "exists":
            return self._exists(context, repository)
        if action == "search":
            return self._search(context, repository)
        return self._list(context, repository)

    def _list(self, context: CommandContext, repository: PromptRepository) -> CommandResult:
        if context.positional_args:
            raise InputValidationError(
                f"Unknown /prompts action '{context.positional_args[0]}'.",
                hint="Run /help prompts for usage.",
            )
        limit = int_flag(context, "limit", DEFAULT_LIST_LIMIT, minimum=1, maximum=MAX_LIST_LIMIT)
        summaries = repository.list(tags=split_csv(context.flags.get("tags")), limit=limit)
        return self._emit_summaries(context, summaries, empty="No prompts saved.")

    def _search(self, context: CommandContext, repository: PromptRepository) -> CommandResult:
        query = context.flag("query") or " ".join(context.positional_args)
        if not query.strip():
            raise InputValidationError(
                "A search query is required.", hint="Usage: /prompts search <query>"
            )
        limit = int_flag(context, "limit", DEFAULT_LIST_LIMIT, minimum=1, maximum=MAX_LIST_LIMIT)
        summaries = repository.search(
            query,
            tags=split_csv(context.flags.get("tags")),
            limit=limit,
            include_body=flag_enabled(context.flags.get("body")),
        )
        return self._emit_summaries(context, summaries, empty="No prompts matched.")

    @staticmethod
    def _emit_summaries(
        context: CommandContext,
        summaries: tuple[PromptSummary, ...],
        *,
        empty: str,
    ) -> CommandResult:
        payload = [summary.model_dump(mode="json", exclude_none=True) for summary in summaries]
        if context.json_output:
            context.output(payload)
        elif not summaries:
            context.output(empty)
        else:
            for summary in summaries:
                context.output(_summary_line(summary))
                if summary.body:
                    context.output(summary.body)
        return CommandResult.ok(data={"prompts": payload})

    def _get(self, context: CommandContext, repository: PromptRepository) -> CommandResult:
        record = repository.get(self._prompt_id(context, "get"))
        payload = record.model_dump(mode="json")
        if context.json_output:
            context.output(payload)
        else:
            context.output(f"--- {record.title} ({record.id}) ---")
            if record.description:
                context.output(record.description)
            if record.tags:
                context.output(f"Tags: {', '.join(record.tags)}")
            context.output(record.body)
        return CommandResult.ok(data={"prompt": payload})

    def _save(self, context: CommandContext, repository: PromptRepository) -> CommandResult:
        prompt_id = self._prompt_id(context, "save")
        body = context.flag("body") or " ".join(context.positional_args[1:])
        if not body.strip():
            raise InputValidationError(
                "Prompt body is required.", hint="Usage: /prompts save <id> <text>"
            )
        tags = split_csv(context.flags.get("tags")) if "tags" in context.flags else None
        record = repository.save(
            prompt_id,
            body=body,
            title=context.flag("title"),
            description=context.flag("description"),
            tags=tags,
        )
        payload = record.model_dump(mode="json")
        if context.json_output:
            context.output(payload)
        else:
            context.output(f"Saved prompt {record.id}.")
        return CommandResult.ok(data={"prompt": payload})

    def _delete(self, context: CommandContext, repository: PromptRepository) -> CommandResult:
        prompt_id = self._prompt_id(context, "delete")
        repository.delete(prompt_id)
        context.output(f"Deleted prompt {prompt_id}.")
        return CommandResult.ok(data={"deleted": prompt_id})

    def _exists(self, context: CommandContext, repository: PromptRepository) -> CommandResult:
        prompt_id = self._prompt_id(context, "exists")
        exists = repository.exists(prompt_id)
        if context.json_output:
            context.output({"id": prompt_id, "exists": exists})
        else:
            context.output(f"Prompt {prompt_id} {'exists' if exists else 'does not exist'}.")
        return CommandResult.ok(data={"id": prompt_id, "exists": exists})

    @staticmethod
    def _prompt_id(context: CommandContext, action: str) -> str:
        if not context.positional_args:
            raise InputValidationError(
                "Prompt id is required.", hint=f"Usage: /prompts {action} <id>"
            )
        return context.positional_args[0]
