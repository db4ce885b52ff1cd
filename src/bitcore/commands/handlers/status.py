"""Handler for `/status`."""

from __future__ import annotations

from typing import Any

from bitcore.commands.context import CommandContext
from bitcore.commands.handlers._support import ensure_no_extra_args
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult


class StatusCommand:
    """Report operator identity, credentials, and session state."""

    name = "status"
    aliases: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    default_action = None

    def help(self) -> str:
        """Return help block."""
        return help_line("/status [--json]", "Show user, key configuration, and session state.")

    async def execute(self, context: CommandContext) -> CommandResult:
        """Render status summary.

        Args:
            context: Command context.

        Returns:
            Success result carrying the status payload.
        """
        ensure_no_extra_args(context)
        services = context.services
        scheduler = services.scheduler
        github = services.profile.get_github_config()
        payload: dict[str, Any] = {
            "user": context.current_user.username,
            "role": context.current_user.role.value,
            "mode": context.session.mode.value,
            "chatActive": context.session.chat_active,
            "storage": str(services.settings.storage_dir),
            "keys": services.profile.configured_services(),
            "github": bool(github.owner and github.repo),
            "research": services.research is not None,
            "chat": services.chat is not None and services.chat.configured,
            "scheduler": scheduler.running if scheduler is not None else False,
        }
        if context.json_output:
            context.output(payload)
            return CommandResult.ok(data={"status": payload})

        context.output("--- Status ---")
        context.output(f"User: {payload['user']} ({payload['role']})")
        context.output(f"Mode: {payload['mode']}")
        context.output(f"Storage: {payload['storage']}")
        for service, configured in payload["keys"].items():
            state = "configured" if configured else "not configured"
            context.output(f"Key {service}: {state}")
        context.output(f"GitHub target: {'configured' if payload['github'] else 'not configured'}")
        context.output(f"Research engine: {'ready' if payload['research'] else 'not configured'}")
        context.output(f"Chat backend: {'ready' if payload['chat'] else 'not configured'}")
        context.output(f"Mission scheduler: {'running' if payload['scheduler'] else 'stopped'}")
        return CommandResult.ok(data={"status": payload})
