"""Command registry mapping names and aliases to handlers."""

from __future__ import annotations

import re
from collections.abc import Iterable

from bitcore.commands.types import CommandHandler

RESERVED_NAMES = frozenset({"help"})
_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")


class RegistryError(RuntimeError):
    """Raised on invalid registration (collision, reserved name, frozen)."""


class CommandRegistry:
    """Name-to-handler mapping, populated at startup then frozen."""

    def __init__(self) -> None:
        """Create an empty, unfrozen registry."""
        self._handlers: dict[str, CommandHandler] = {}
        self._aliases: dict[str, str] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        """Return whether registration is closed."""
        return self._frozen

    def register(
        self,
        handler: CommandHandler,
        *,
        name: str | None = None,
        aliases: Iterable[str] | None = None,
    ) -> None:
        """Register one handler under its name and aliases.

        Args:
            handler: Command handler.
            name: Optional name override (defaults to ``handler.name``).
            aliases: Optional alias override (defaults to ``handler.aliases``).

        Raises:
            RegistryError: If frozen, reserved, malformed, or colliding.
        """
        if self._frozen:
            raise RegistryError("Command registry is frozen.")
        canonical = _normalize(name or handler.name)
        alias_names = [
            _normalize(alias)
            for alias in (handler.aliases if aliases is None else aliases)
        ]
        for candidate in (canonical, *alias_names):
            if candidate in RESERVED_NAMES:
                raise RegistryError(f"Command name '/{candidate}' is reserved.")
            if candidate in self._handlers or candidate in self._aliases:
                raise RegistryError(f"Command name '/{candidate}' is already registered.")
        if len(set(alias_names)) != len(alias_names) or canonical in alias_names:
            raise RegistryError(f"Duplicate aliases for '/{canonical}'.")
        self._handlers[canonical] = handler
        for alias in alias_names:
            self._aliases[alias] = canonical

    def freeze(self) -> CommandRegistry:
        """Close registration and return self."""
        self._frozen = True
        return self

    def canonical_name(self, name: str) -> str | None:
        """Resolve a name or alias to its canonical command name."""
        normalized = name.strip().lstrip("/").lower()
        if normalized in self._handlers:
            return normalized
        return self._aliases.get(normalized)

    def get(self, name: str) -> CommandHandler | None:
        """Return handler for a name or alias."""
        canonical = self.canonical_name(name)
        return self._handlers.get(canonical) if canonical is not None else None

    def names(self) -> tuple[str, ...]:
        """Return canonical command names in alphabetical order."""
        return tuple(sorted(self._handlers))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.canonical_name(name) is not None

    def __len__(self) -> int:
        return len(self._handlers)


def _normalize(name: str) -> str:
    """Validate and normalize a command name.

    Raises:
        RegistryError: If the name is malformed.
    """
    normalized = name.strip().lstrip("/").lower()
    if not _NAME_PATTERN.match(normalized):
        raise RegistryError(f"Invalid command name: {name!r}.")
    return normalized


def build_default_registry(
    extra: Iterable[CommandHandler] = (),
) -> CommandRegistry:
    """Register built-in handlers plus extras and freeze.

    Args:
        extra: Additional handlers to register.

    Returns:
        Frozen registry.
    """
    from bitcore.commands.handlers import builtin_handlers  # noqa: PLC0415

    registry = CommandRegistry()
    for handler in (*builtin_handlers(), *extra):
        registry.register(handler)
    return registry.freeze()
