"""Emitters bundling structured logging with forwarding to a caller sink."""

from __future__ import annotations

import asyncio
import inspect
import json
import sys
import traceback
from collections.abc import Callable
from typing import Any, Protocol

from bitcore.observability import LogLevel, ModuleLogger, normalize_level

Sink = Callable[[Any], Any]


class Emitter(Protocol):
    """Callable writing one value to the log channel and the sink."""

    def __call__(self, value: Any, meta: Any = None) -> None:
        """Emit one value with optional log metadata."""


def serialize_value(value: Any) -> str:
    """Render an emitted value as text.

    Args:
        value: Emitted value.

    Returns:
        Strings unchanged, exceptions as stack text, other values as
        indented JSON.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, BaseException):
        if value.__traceback__ is not None:
            return "".join(traceback.format_exception(value)).rstrip()
        return f"{type(value).__name__}: {value}"
    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        value = model_dump(mode="json")
    try:
        return json.dumps(value, indent=2, default=str)
    except (TypeError, ValueError):
        return str(value)


def _write_stream(text: str, *, use_stderr: bool) -> None:
    stream = sys.stderr if use_stderr else sys.stdout
    stream.write(f"{text}\n")
    stream.flush()


def _report_task_failure(logger: ModuleLogger, task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warn("Output sink failed.", {"error": error})


def create_emitter(
    handler: Sink | None,
    level: object,
    logger: ModuleLogger,
) -> Emitter:
    """Build an emitter for one sink and level.

    Args:
        handler: Optional caller sink receiving the original value.
        level: Log level for the structured entry.
        logger: Module logger receiving every emitted value.

    Returns:
        Emitter callable; sink failures are logged and never propagate.
    """
    resolved = normalize_level(level)
    use_stderr = resolved in {LogLevel.WARN, LogLevel.ERROR}

    def emit(value: Any, meta: Any = None) -> None:
        text = serialize_value(value)
        entry_meta = meta
        if entry_meta is None and not isinstance(value, str):
            entry_meta = {"payload": value}
        logger.log(resolved, text, entry_meta)

        if handler is None:
            _write_stream(text, use_stderr=use_stderr)
            return

        try:
            outcome = handler(value)
        except Exception as exc:  # noqa: BLE001
            logger.warn("Output sink failed.", {"error": exc})
            _write_stream(text, use_stderr=use_stderr)
            return
        if not inspect.isawaitable(outcome):
            return
        try:
            loop = asyncio.get_running_loop()
            task = asyncio.ensure_future(outcome, loop=loop)
        except RuntimeError as exc:
            if inspect.iscoroutine(outcome):
                outcome.close()
            logger.warn("Output sink returned awaitable without a loop.", {"error": exc})
            return
        task.add_done_callback(lambda done: _report_task_failure(logger, done))

    return emit
