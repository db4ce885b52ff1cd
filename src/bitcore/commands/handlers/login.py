"""Handlers for `/login`, `/logout`, and `/password-change` in single-user mode."""

from __future__ import annotations

from bitcore.commands.acknowledgement import DEFAULT_PROMPTS
from bitcore.commands.context import CommandContext
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult, ModeChange
from bitcore.session.models import TerminalMode


def _user_payload(context: CommandContext) -> dict[str, str]:
    user = context.services.profile.get_current_user()
    return {"username": user.username, "role": user.role.value}


class LoginCommand:
    """Report the fixed operator identity."""

    name = "login"
    aliases: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    default_action = None
    redact_positionals_after = 1

    def help(self) -> str:
        """Return help block."""
        return help_line("/login", "Single-user mode: confirm the operator session.")

    async def execute(self, context: CommandContext) -> CommandResult:
        """Confirm the operator identity and bind it to the session."""
        user = _user_payload(context)
        context.output(
            f"Single-user mode: logged in as {user['username']} ({user['role']})."
        )
        return CommandResult.ok(data={"user": user})


class LogoutCommand:
    """Reset session state; identity stays fixed."""

    name = "logout"
    aliases: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    default_action = None

    def help(self) -> str:
        """Return help block."""
        return help_line("/logout", "Single-user mode: reset the session state.")

    async def execute(self, context: CommandContext) -> CommandResult:
        """Leave chat mode and drop cached credentials."""
        context.session.reset_chat()
        context.session.credentials = {}
        context.session.last_research = None
        user = _user_payload(context)
        context.output(
            f"Single-user mode: session reset; still operating as {user['username']}."
        )
        return CommandResult.ok(
            data={"user": user},
            mode_change=ModeChange(
                mode=TerminalMode.COMMAND.value,
                prompt=DEFAULT_PROMPTS[TerminalMode.COMMAND],
            ),
        )


class PasswordChangeCommand:
    """Password changes do not apply without multi-user authentication."""

    name = "password-change"
    aliases = ("password",)
    actions: tuple[str, ...] = ()
    default_action = None
    redact_positionals_after = 0

    def help(self) -> str:
        """Return help block."""
        return help_line("/password-change", "Not applicable in single-user mode.")

    async def execute(self, context: CommandContext) -> CommandResult:
        """Explain that no password exists to change."""
        context.output("Password changes are not applicable in single-user mode.")
        return CommandResult.ok()
