"""Deterministic slash command parser."""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field

from bitcore.commands.tokenizer import tokenize

UNTERMINATED_QUOTE_WARNING = "unterminated_quote"

FlagValue = str | bool


class ParsedCommand(BaseModel):
    """Normalized slash command call."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    command_name: str | None = None
    positional_args: tuple[str, ...] = ()
    flags: dict[str, FlagValue] = Field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        """Return whether the input carried no command."""
        return not self.command_name


def parse_tokens(
    tokens: Sequence[str], *, warnings: Sequence[str] = ()
) -> ParsedCommand:
    """Turn a token list into command name, positionals, and flags.

    Args:
        tokens: Tokens from :func:`tokenize` or a structured caller.
        warnings: Tokenizer warnings carried onto the parsed command.

    Returns:
        Parsed command; empty tokens yield ``command_name=None``.
    """
    if not tokens:
        return ParsedCommand(warnings=tuple(warnings))

    head = tokens[0]
    name = head[1:] if head.startswith("/") else head
    command_name = name.lower() or None

    positional: list[str] = []
    flags: dict[str, FlagValue] = {}
    for token in tokens[1:]:
        if token.startswith("--"):
            key, sep, value = token[2:].partition("=")
            if not key:
                continue
            flags[key] = value if sep else True
        else:
            positional.append(token)

    return ParsedCommand(
        command_name=command_name,
        positional_args=tuple(positional),
        flags=flags,
        warnings=tuple(warnings),
    )


def parse_command_line(line: str) -> ParsedCommand:
    """Tokenize and parse one raw command line.

    Args:
        line: Raw line; trailing newlines are stripped.

    Returns:
        Parsed command.
    """
    result = tokenize(line.rstrip("\r\n"))
    warnings = (UNTERMINATED_QUOTE_WARNING,) if result.unterminated_quote else ()
    return parse_tokens(result.tokens, warnings=warnings)
