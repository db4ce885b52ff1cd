"""Command error taxonomy and the single rendering boundary for failures."""

from __future__ import annotations

import traceback
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from bitcore.commands.types import CommandResult
from bitcore.observability import ModuleLogger, create_module_logger

if TYPE_CHECKING:
    from bitcore.commands.context import CommandContext

_LOGGER = create_module_logger("commands.errors", emit_to_std_streams=False)


class ErrorKind(StrEnum):
    """Typed failure categories rendered by the error wrapper."""

    AUTHENTICATION = "authentication"
    API_KEY = "api_key"
    INPUT_VALIDATION = "input_validation"
    NETWORK = "network"
    SERVER = "server"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


RECOVERY_HINTS: dict[ErrorKind, str] = {
    ErrorKind.INPUT_VALIDATION: "Check your input and try again.",
    ErrorKind.PERMISSION: "Admin privileges required.",
    ErrorKind.AUTHENTICATION: "Run /login to start a session.",
    ErrorKind.API_KEY: "Use /keys set <service> <value> to configure credentials.",
    ErrorKind.NETWORK: "Check connectivity and try again.",
    ErrorKind.SERVER: "The service reported an internal error; try again shortly.",
    ErrorKind.NOT_FOUND: "The requested resource was not found.",
    ErrorKind.UNKNOWN: "If this persists, try /diagnose.",
}


class CommandError(Exception):
    """Typed command failure carrying its error kind."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Create typed command failure.

        Args:
            message: Human-readable failure summary.
            hint: Optional recovery hint overriding the kind default.
            data: Optional structured payload for logs.
        """
        super().__init__(message)
        self.hint = hint
        self.data = data or {}


class InputValidationError(CommandError):
    """Missing or invalid positional argument or flag."""

    kind = ErrorKind.INPUT_VALIDATION


class PermissionDeniedError(CommandError):
    """Role check failed."""

    kind = ErrorKind.PERMISSION


class AuthenticationRequiredError(CommandError):
    """Session missing in a flow that requires one."""

    kind = ErrorKind.AUTHENTICATION


class ApiKeyError(CommandError):
    """External-service credential missing or rejected."""

    kind = ErrorKind.API_KEY


class UpstreamNetworkError(CommandError):
    """Upstream timeout or connection failure."""

    kind = ErrorKind.NETWORK


class UpstreamServerError(CommandError):
    """Upstream 5xx or internal state failure."""

    kind = ErrorKind.SERVER


class NotFoundError(CommandError):
    """Named entity is absent."""

    kind = ErrorKind.NOT_FOUND


def classify_error(error: BaseException | str) -> ErrorKind:
    """Map an exception to an error kind.

    Args:
        error: Raised exception or plain message.

    Returns:
        Kind from the error's ``kind`` attribute, else by exception type,
        else ``unknown``.
    """
    if isinstance(error, str):
        return ErrorKind.UNKNOWN
    declared = getattr(error, "kind", None)
    if declared is not None:
        try:
            return ErrorKind(declared)
        except ValueError:
            pass
    if isinstance(error, TimeoutError | ConnectionError):
        return ErrorKind.NETWORK
    if isinstance(error, PermissionError):
        return ErrorKind.PERMISSION
    if isinstance(error, FileNotFoundError | LookupError):
        return ErrorKind.NOT_FOUND
    if isinstance(error, ValidationError):
        return ErrorKind.INPUT_VALIDATION
    return ErrorKind.UNKNOWN


def error_message(error: BaseException | str) -> str:
    """Return non-empty human summary for an error value."""
    if isinstance(error, str):
        return error or "Unknown error"
    text = str(error).strip()
    return text or type(error).__name__


def handle_command_error(  # noqa: PLR0913
    error: BaseException | str,
    kind: ErrorKind | str | None = None,
    context: CommandContext | None = None,
    error_sink: Callable[..., Any] | None = None,
    *,
    output_sink: Callable[..., Any] | None = None,
    logger: ModuleLogger | None = None,
    hint: str | None = None,
) -> CommandResult:
    """Render one typed error line and return the failure envelope.

    Args:
        error: Raised exception or plain message.
        kind: Explicit kind overriding classification.
        context: Command context supplying sinks and verbosity.
        error_sink: Sink for the ``Error [<kind>]`` line.
        output_sink: Sink for the recovery hint line.
        logger: Logger receiving the full stack.
        hint: Recovery hint override.

    Returns:
        ``success=False, handled=True`` result carrying the message.
    """
    resolved_kind = ErrorKind(kind) if kind is not None else classify_error(error)
    message = error_message(error)
    errors = error_sink or (context.error if context is not None else None)
    outputs = output_sink or (context.output if context is not None else None)
    log = logger or (context.logger if context is not None else _LOGGER)

    stack = (
        "".join(traceback.format_exception(error))
        if isinstance(error, BaseException)
        else None
    )
    log.error(
        f"Command failed [{resolved_kind.value}]: {message}",
        {
            "kind": resolved_kind.value,
            "command": context.command_name if context is not None else None,
            "stack": stack,
        },
    )

    line = f"Error [{resolved_kind.value}]: {message}"
    if errors is not None:
        errors(line)
    recovery = hint or getattr(error, "hint", None) or RECOVERY_HINTS[resolved_kind]
    if recovery and outputs is not None:
        outputs(f"Hint: {recovery}")
    if stack and errors is not None and context is not None and context.verbose:
        errors(f"Details: {stack}")

    return CommandResult.failure(message)
