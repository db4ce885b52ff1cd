"""Handler for `/logs`: inspect and tune the in-memory log channel."""

from __future__ import annotations

import asyncio
import re
import time
from datetime import datetime

from bitcore.commands.context import CommandContext, flag_enabled
from bitcore.commands.errors import InputValidationError
from bitcore.commands.handlers._support import format_timestamp, int_flag, parse_since
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult
from bitcore.observability import LogEntry, LogLevel
from bitcore.observability.log_channel import (
    MAX_BUFFER_SIZE,
    MIN_BUFFER_SIZE,
    normalize_level,
)

DEFAULT_TAIL_LIMIT = 200
DEFAULT_FOLLOW_SECONDS = 30.0
MAX_FOLLOW_SECONDS = 600.0
DEFAULT_FOLLOW_MAX = 50

_DURATION_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(ms|s|m)?$")


def format_entry(entry: LogEntry) -> str:
    """Render one entry as ``[ts] LEVEL source: message``."""
    stamp = datetime.fromtimestamp(entry.timestamp).astimezone().isoformat(
        timespec="milliseconds"
    )
    return f"[{stamp}] {entry.level.value.upper()} {entry.source}: {entry.message}"


def parse_duration(value: str | None, default: float = DEFAULT_FOLLOW_SECONDS) -> float:
    """Parse ``500ms``/``30s``/``2m`` (bare numbers are seconds).

    Raises:
        InputValidationError: If the value is malformed.
    """
    if value is None or not value.strip():
        return default
    match = _DURATION_PATTERN.match(value.strip().lower())
    if match is None:
        raise InputValidationError(f"Invalid duration: {value}")
    amount = float(match.group(1))
    unit = match.group(2) or "s"
    seconds = amount / 1000 if unit == "ms" else amount * 60 if unit == "m" else amount
    return min(seconds, MAX_FOLLOW_SECONDS)


class LogsCommand:
    """Tail, summarize, resize, and purge the log channel."""

    name = "logs"
    aliases: tuple[str, ...] = ()
    actions = ("tail", "stats", "settings", "retention", "purge", "clear")
    default_action = "tail"

    def help(self) -> str:
        """Return help block."""
        return "\n".join(
            [
                help_line("/logs purge", "Clear buffered entries."),
                help_line(
                    "/logs retention <n>",
                    f"Set the buffer size ({MIN_BUFFER_SIZE}-{MAX_BUFFER_SIZE}).",
                ),
                help_line("/logs settings", "Show buffer size and levels."),
                help_line("/logs stats", "Summarize log counts by level [--since]."),
                help_line(
                    "/logs tail",
                    "Show recent entries [--limit --levels --search --sample --since "
                    "--follow --duration --max --json].",
                ),
            ]
        )

    async def execute(self, context: CommandContext) -> CommandResult:
        """Route to the requested action."""
        action = context.action or self.default_action
        if action == "stats":
            return self._stats(context)
        if action == "settings":
            return self._settings(context)
        if action == "retention":
            return self._retention(context)
        if action in {"purge", "clear"}:
            return self._purge(context)
        return await self._tail(context)

    async def _tail(self, context: CommandContext) -> CommandResult:
        channel = context.services.log_channel
        limit = int_flag(context, "limit", DEFAULT_TAIL_LIMIT, minimum=1, maximum=MAX_BUFFER_SIZE)
        sample = int_flag(context, "sample", 1, minimum=1, maximum=1000)
        levels = context.flag("levels") or context.flag("level")
        search = context.flag("search") or " ".join(context.positional_args) or None
        since = parse_since(context.flag("since"))

        entries = channel.snapshot(
            limit=limit, levels=levels, search=search, since=since, sample=sample
        )
        follow = flag_enabled(context.flags.get("follow"))
        if not context.json_output:
            if entries:
                for entry in entries:
                    context.output(format_entry(entry))
            else:
                context.output("No log entries matched the filters.")

        new_entries: list[LogEntry] = []
        if follow:
            new_entries = await self._follow(context, levels=levels, search=search)
            entries = [*entries, *new_entries][-limit:]

        payload = [entry.model_dump(mode="json") for entry in entries]
        if context.json_output:
            context.output(payload)
        data: dict[str, object] = {"logs": payload}
        if follow:
            data.update({"followed": True, "newEntries": len(new_entries)})
        return CommandResult.ok(data=data)

    async def _follow(
        self,
        context: CommandContext,
        *,
        levels: str | None,
        search: str | None,
    ) -> list[LogEntry]:
        duration = parse_duration(context.flag("duration"))
        maximum = int_flag(context, "max", DEFAULT_FOLLOW_MAX, minimum=1, maximum=MAX_BUFFER_SIZE)
        level_filter = {normalize_level(item) for item in (levels or "").split(",") if item.strip()}
        needle = search.lower() if search else None
        own_source = context.logger.source

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[LogEntry] = asyncio.Queue()

        def _listener(entry: LogEntry) -> None:
            if entry.source == own_source:
                return
            if level_filter and entry.level not in level_filter:
                return
            if needle and needle not in entry.message.lower():
                return
            loop.call_soon_threadsafe(queue.put_nowait, entry)

        unsubscribe = context.services.log_channel.subscribe(_listener)
        collected: list[LogEntry] = []
        deadline = time.monotonic() + duration
        try:
            while len(collected) < maximum:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    entry = await asyncio.wait_for(queue.get(), timeout=remaining)
                except TimeoutError:
                    break
                collected.append(entry)
                if not context.json_output:
                    context.output(format_entry(entry))
        finally:
            unsubscribe()
        return collected

    def _stats(self, context: CommandContext) -> CommandResult:
        raw_since = context.flag("since") or (
            context.positional_args[0] if context.positional_args else None
        )
        stats = context.services.log_channel.stats(since=parse_since(raw_since))
        payload = stats.model_dump(mode="json")
        if context.json_output:
            context.output(payload)
        else:
            context.output("--- Log Statistics ---")
            context.output(f"Total: {stats.total}")
            for level in LogLevel:
                context.output(f"{level.value.capitalize()}: {stats.levels[level.value]}")
            if stats.first_timestamp is not None:
                context.output(f"First: {format_timestamp(stats.first_timestamp)}")
            if stats.last_timestamp is not None:
                context.output(f"Last: {format_timestamp(stats.last_timestamp)}")
        return CommandResult.ok(data={"stats": payload})

    def _settings(self, context: CommandContext) -> CommandResult:
        settings = {
            "bufferSize": context.services.log_channel.buffer_size,
            "availableLevels": [level.value for level in LogLevel],
        }
        if context.json_output:
            context.output(settings)
        else:
            context.output("--- Log Settings ---")
            context.output(f"Buffer Size: {settings['bufferSize']}")
            context.output(f"Available Levels: {', '.join(settings['availableLevels'])}")
        return CommandResult.ok(data={"settings": settings})

    def _retention(self, context: CommandContext) -> CommandResult:
        raw = context.flag("size") or (
            context.positional_args[0] if context.positional_args else None
        )
        if raw is None:
            raise InputValidationError(
                "Buffer size is required.", hint="Usage: /logs retention <size>"
            )
        try:
            requested = int(raw)
        except ValueError as exc:
            raise InputValidationError("Buffer size must be an integer.") from exc
        if not MIN_BUFFER_SIZE <= requested <= MAX_BUFFER_SIZE:
            raise InputValidationError(
                f"Buffer size must be between {MIN_BUFFER_SIZE} and {MAX_BUFFER_SIZE}."
            )
        size = context.services.log_channel.configure(buffer_size=requested)
        context.output(f"Log buffer size set to {size}.")
        return CommandResult.ok(data={"bufferSize": size})

    def _purge(self, context: CommandContext) -> CommandResult:
        context.logger.warn("Log buffer clear requested.")
        context.services.log_channel.clear()
        context.output("Log buffer cleared.")
        return CommandResult.ok(data={"cleared": True})
