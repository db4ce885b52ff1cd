"""Handler for `/keys`: store, list, and probe service API keys."""

from __future__ import annotations

import asyncio
from typing import Any

from bitcore.commands.context import CommandContext
from bitcore.commands.errors import InputValidationError
from bitcore.commands.handlers._support import require_service
from bitcore.commands.help import help_line
from bitcore.commands.parser import ParsedCommand
from bitcore.commands.types import CommandResult
from bitcore.profile.key_probe import PROBE_TIMEOUT_SECONDS, KeyCheck
from bitcore.profile.store import KNOWN_SERVICES

_TIPS = {
    "venice": "Check the key at https://venice.ai/settings/api.",
    "brave": "Check the subscription token at https://api.search.brave.com/app/keys.",
    "github": "Check the token scopes at https://github.com/settings/tokens.",
}
_GITHUB_FIELDS = ("owner", "repo", "branch", "token")


class KeysCommand:
    """Manage credentials stored on the operator profile."""

    name = "keys"
    aliases = ("key",)
    actions = ("set", "check", "test", "github")
    default_action = "check"

    def visible_positionals(self, parsed: ParsedCommand) -> int:
        """Keep the action and service name; a bare service flag keeps only the action."""
        if any(parsed.flags.get(service) is True for service in KNOWN_SERVICES):
            return 1
        return 2

    def help(self) -> str:
        """Return help block."""
        return "\n".join(
            [
                help_line("/keys check", "List configured services."),
                help_line(
                    "/keys github",
                    "Show or set the GitHub target [--owner --repo --branch --token].",
                ),
                help_line("/keys set <svc> <value>", "Store an API key (or --<svc>=<value>)."),
                help_line("/keys test [svc]", "Probe stored keys against upstream APIs."),
            ]
        )

    async def execute(self, context: CommandContext) -> CommandResult:
        """Route to the requested action."""
        if context.action == "set":
            return await self._set(context)
        if context.action == "test":
            return await self._test(context)
        if context.action == "github":
            return self._github(context)
        return self._check(context)

    async def _set(self, context: CommandContext) -> CommandResult:
        updates = self._updates_from_flags(context)
        args = context.positional_args
        bare = [name for name in KNOWN_SERVICES if context.flags.get(name) is True]
        if bare or args:
            if bare:
                service, rest = bare[0], args
            else:
                service, rest = args[0].lower(), args[1:]
            value = " ".join(rest).strip() or None
            if value is None and context.ws_prompt is not None:
                value = await context.ws_prompt(f"Enter {service} API key:", hidden=True)
            if not value:
                raise InputValidationError(
                    f"No value supplied for {service}.",
                    hint="Usage: /keys set <service> <value>",
                )
            updates[service] = value
        if not updates:
            raise InputValidationError(
                "No keys supplied.",
                hint="Usage: /keys set <service> <value> or /keys set --brave=<value>",
            )

        profile = context.services.profile
        for service, value in updates.items():
            profile.set_api_key(service, value)
        stored = sorted(updates)
        context.logger.info("API keys updated.", {"services": stored})
        if context.json_output:
            context.output({"updated": stored})
        else:
            context.output(f"Stored API key(s): {', '.join(stored)}")
        return CommandResult.ok(data={"updated": stored})

    @staticmethod
    def _updates_from_flags(context: CommandContext) -> dict[str, str]:
        updates: dict[str, str] = {}
        for name, value in context.flags.items():
            if name in KNOWN_SERVICES and isinstance(value, str) and value.strip():
                updates[name] = value.strip()
        return updates

    def _check(self, context: CommandContext) -> CommandResult:
        if context.positional_args:
            raise InputValidationError(
                f"Unknown /keys action '{context.positional_args[0]}'.",
                hint="Run /help keys for usage.",
            )
        configured = context.services.profile.configured_services()
        if context.json_output:
            context.output({"keys": configured})
        else:
            context.output("--- API Keys ---")
            for service, present in configured.items():
                context.output(f"{service}: {'configured' if present else 'not configured'}")
        return CommandResult.ok(data={"keys": configured})

    async def _test(self, context: CommandContext) -> CommandResult:
        probe = require_service(
            context.services.key_probe, "Key probing is not configured."
        )
        profile = context.services.profile
        requested = [arg.lower() for arg in context.positional_args] or [
            service for service in ("venice", "brave") if profile.has_api_key(service)
        ]
        if not requested:
            context.output("No API keys configured to test.")
            return CommandResult.ok(data={"results": {}, "apiTestsSucceeded": False})

        results: dict[str, Any] = {}
        for service in requested:
            key = profile.get_api_key(service)
            if key is None:
                check = KeyCheck(service=service, valid=False, detail="Not configured")
            else:
                try:
                    check = await asyncio.wait_for(
                        probe(service, key), timeout=PROBE_TIMEOUT_SECONDS
                    )
                except TimeoutError:
                    check = KeyCheck(
                        service=service,
                        valid=False,
                        detail=f"Timed out after {PROBE_TIMEOUT_SECONDS:g}s",
                    )
            results[service] = check.model_dump()
            if not context.json_output:
                context.output(f"{service}: {check.detail}")
                if not check.valid and service in _TIPS:
                    context.output(f"  Tip: {_TIPS[service]}")

        succeeded = all(item["valid"] for item in results.values())
        if context.json_output:
            context.output({"results": results, "apiTestsSucceeded": succeeded})
        return CommandResult.ok(data={"results": results, "apiTestsSucceeded": succeeded})

    def _github(self, context: CommandContext) -> CommandResult:
        if context.positional_args:
            raise InputValidationError(
                "/keys github takes flags only.",
                hint="Usage: /keys github --owner=<owner> --repo=<repo> [--branch --token]",
            )
        profile = context.services.profile
        config = profile.get_github_config()
        changes: dict[str, str | None] = {}
        for field in _GITHUB_FIELDS:
            value = context.flag(field)
            if value is None:
                continue
            cleaned = value.strip() or None
            changes[field] = (cleaned or "main") if field == "branch" else cleaned
        if changes:
            config = config.model_copy(update=changes)
            profile.set_github_config(config)
            context.logger.info("GitHub config updated.", {"fields": sorted(changes)})

        summary = {
            "owner": config.owner,
            "repo": config.repo,
            "branch": config.branch,
            "tokenConfigured": bool(config.token),
        }
        data: dict[str, Any] = {"github": summary, "updated": sorted(changes)}
        if context.json_output:
            context.output(data)
            return CommandResult.ok(data=data)
        if changes:
            context.output(f"Updated GitHub config: {', '.join(sorted(changes))}")
        target = (
            f"{config.owner}/{config.repo}" if config.owner and config.repo else "not configured"
        )
        context.output("--- GitHub ---")
        context.output(f"Repository: {target} (branch {config.branch})")
        context.output(f"Token: {'configured' if config.token else 'not configured'}")
        return CommandResult.ok(data=data)
