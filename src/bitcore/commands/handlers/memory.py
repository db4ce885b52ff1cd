"""Handler for `/memory`: layered memory store operations."""

from __future__ import annotations

from bitcore.commands.context import CommandContext
from bitcore.commands.errors import InputValidationError
from bitcore.commands.handlers._support import (
    int_flag,
    require_service,
    split_csv,
)
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult
from bitcore.memory.models import MemoryRecord
from bitcore.memory.store import MAX_RECALL_LIMIT, FileMemoryStore


def format_record(record: MemoryRecord, index: int) -> list[str]:
    """Render one record as display lines."""
    lines = [
        f"[{index + 1}] ({record.layer.value}) {record.role} @ {record.timestamp.isoformat()}",
        record.content,
        f"Tags: {', '.join(record.tags) if record.tags else 'none'}",
    ]
    if record.score is not None:
        lines.append(f"Score: {record.score}")
    return lines


class MemoryCommand:
    """Store, recall, and summarize memories."""

    name = "memory"
    aliases = ("mem",)
    actions = ("stats", "recall", "store", "summarize")
    default_action = "stats"

    def help(self) -> str:
        """Return help block."""
        return "\n".join(
            [
                help_line("/memory recall <query>", "Retrieve relevant memories [--layer --limit]."),
                help_line("/memory stats", "Show per-layer usage metrics [--layer --json]."),
                help_line("/memory store <text>", "Persist a memory [--layer --role --tags --source]."),
                help_line("/memory summarize", "Summarize a layer into semantic memory [--conversation]."),
            ]
        )

    async def execute(self, context: CommandContext) -> CommandResult:
        """Route to the requested action."""
        store = require_service(context.services.memory, "Memory store is not configured.")
        action = context.action or self.default_action
        if action == "recall":
            return self._recall(context, store)
        if action == "store":
            return self._store(context, store)
        if action == "summarize":
            return self._summarize(context, store)
        return self._stats(context, store)

    def _stats(self, context: CommandContext, store: FileMemoryStore) -> CommandResult:
        if context.positional_args:
            raise InputValidationError(
                f"Unknown /memory action '{context.positional_args[0]}'.",
                hint="Run /help memory for usage.",
            )
        stats = store.stats(layer=context.flag("layer"))
        payload = stats.model_dump(mode="json")
        if context.json_output:
            context.output(payload)
            return CommandResult.ok(data={"stats": payload})
        context.output("--- Memory Statistics ---")
        for layer in stats.layers:
            context.output(
                f"{layer.layer.value}: records={layer.records} stored={layer.stored} "
                f"retrieved={layer.retrieved} summarized={layer.summarized}"
            )
        context.output(f"Total records: {stats.totals['records']}")
        return CommandResult.ok(data={"stats": payload})

    def _recall(self, context: CommandContext, store: FileMemoryStore) -> CommandResult:
        query = context.flag("query") or " ".join(context.positional_args)
        if not query.strip():
            raise InputValidationError(
                "A query is required.", hint="Usage: /memory recall <query>"
            )
        limit = int_flag(context, "limit", 5, minimum=1, maximum=MAX_RECALL_LIMIT)
        records = store.recall(query, layer=context.flag("layer"), limit=limit)
        payload = [record.model_dump(mode="json") for record in records]
        if context.json_output:
            context.output(payload)
        elif not records:
            context.output("No memories matched the query.")
        else:
            for index, record in enumerate(records):
                for line in format_record(record, index):
                    context.output(line)
        return CommandResult.ok(data={"memories": payload})

    def _store(self, context: CommandContext, store: FileMemoryStore) -> CommandResult:
        content = context.flag("content") or " ".join(context.positional_args)
        if not content.strip():
            raise InputValidationError(
                "Memory content is required.", hint="Usage: /memory store <text>"
            )
        record = store.store(
            content,
            layer=context.flag("layer") or context.session.memory_layer,
            role=context.flag("role", "user") or "user",
            tags=split_csv(context.flags.get("tags")),
            source=context.flag("source"),
            metadata={"user": context.current_user.username},
        )
        payload = record.model_dump(mode="json")
        if context.json_output:
            context.output(payload)
        else:
            context.output(f"Stored memory {record.id} in {record.layer.value}.")
        return CommandResult.ok(data={"record": payload})

    def _summarize(self, context: CommandContext, store: FileMemoryStore) -> CommandResult:
        conversation = context.flag("conversation") or (
            " ".join(context.positional_args) or None
        )
        result = store.summarize(layer=context.flag("layer"), conversation=conversation)
        payload = result.model_dump(mode="json")
        if context.json_output:
            context.output(payload)
        elif result.record is None:
            context.output(f"Nothing to summarize in {result.layer.value}.")
        else:
            context.output(
                f"Summarized {result.source_count} item(s) from {result.layer.value}:"
            )
            context.output(result.summary)
        return CommandResult.ok(data={"summary": payload})
