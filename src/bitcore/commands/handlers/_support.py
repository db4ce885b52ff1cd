"""Shared helpers for command handlers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, TypeVar

from bitcore.commands.context import CommandContext
from bitcore.commands.errors import InputValidationError, UpstreamServerError

T = TypeVar("T")


def emit_json(context: CommandContext, payload: Any) -> None:
    """Write a structured payload to the output sink."""
    context.output(payload)


def split_csv(value: str | bool | None) -> tuple[str, ...]:
    """Split a comma-separated flag into trimmed items."""
    if not isinstance(value, str):
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def int_flag(
    context: CommandContext,
    name: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    """Read an integer flag with bounds.

    Raises:
        InputValidationError: If the value is not an integer or out of range.
    """
    raw = context.flag(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise InputValidationError(f"--{name} must be an integer.") from exc
    if (minimum is not None and value < minimum) or (
        maximum is not None and value > maximum
    ):
        raise InputValidationError(
            f"--{name} must be between {minimum} and {maximum}."
        )
    return value


def parse_since(value: str | None) -> float | None:
    """Parse an epoch-seconds or ISO-8601 timestamp.

    Raises:
        InputValidationError: If the value cannot be parsed.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).timestamp()
    except ValueError as exc:
        raise InputValidationError(f"Invalid timestamp: {value}") from exc


def ensure_no_extra_args(context: CommandContext) -> None:
    """Reject leftover positionals that look like a mistyped action.

    Raises:
        InputValidationError: If positionals remain.
    """
    if context.positional_args:
        raise InputValidationError(
            f"Unknown /{context.command_name} action '{context.positional_args[0]}'.",
            hint=f"Run /help {context.command_name} for usage.",
        )


def require_service(service: T | None, message: str) -> T:
    """Return a collaborator or raise a server error when it is missing.

    Raises:
        UpstreamServerError: If the collaborator is not configured.
    """
    if service is None:
        raise UpstreamServerError(message)
    return service


def format_timestamp(value: float | datetime | None) -> str:
    """Render a timestamp as ISO-8601 or ``n/a``."""
    if value is None:
        return "n/a"
    if isinstance(value, datetime):
        return value.isoformat()
    return datetime.fromtimestamp(value).astimezone().isoformat(timespec="seconds")
