"""Redaction of credentials from command log metadata."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from bitcore.commands.parser import FlagValue, ParsedCommand

REDACTED = "[redacted]"

_SENSITIVE_FRAGMENTS = ("password", "passwd", "token", "secret", "key", "csrf")
_CREDENTIAL_SERVICES = frozenset({"venice", "brave", "github"})


def is_sensitive_flag(name: str) -> bool:
    """Return whether a flag name carries a credential value."""
    lowered = name.lower()
    if lowered in _CREDENTIAL_SERVICES:
        return True
    return any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS)


def redact_flags(flags: Mapping[str, FlagValue]) -> dict[str, FlagValue]:
    """Return flags with credential string values replaced.

    Boolean flags stay visible since they carry no secret.
    """
    return {
        key: REDACTED if isinstance(value, str) and is_sensitive_flag(key) else value
        for key, value in flags.items()
    }


def visible_positional_count(handler: object, parsed: ParsedCommand) -> int | None:
    """Return how many leading positionals a handler allows in logs.

    Handlers declare a ``visible_positionals(parsed)`` hook or a fixed
    ``redact_positionals_after`` count; ``None`` keeps every arg.
    """
    hook = getattr(handler, "visible_positionals", None)
    if callable(hook):
        return hook(parsed)
    return getattr(handler, "redact_positionals_after", None)


def redact_positionals(
    args: Sequence[str], *, keep: int | None = None
) -> list[str]:
    """Return positional args with everything after ``keep`` replaced.

    Args:
        args: Positional args (as seen before action consumption).
        keep: Number of leading args that stay visible; ``None`` keeps all.

    Returns:
        Redacted copy.
    """
    if keep is None:
        return list(args)
    return [arg if index < keep else REDACTED for index, arg in enumerate(args)]
