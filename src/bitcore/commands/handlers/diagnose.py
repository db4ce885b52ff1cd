"""Handler for `/diagnose`: admin health checks."""

from __future__ import annotations

import asyncio
import os
import platform
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any

from bitcore.commands.context import CommandContext
from bitcore.commands.errors import InputValidationError
from bitcore.commands.help import help_line
from bitcore.commands.types import CommandResult
from bitcore.profile.key_probe import PROBE_TIMEOUT_SECONDS

CHECKS = ("system", "keys", "storage", "logs")
STORAGE_SUBDIRS = ("memory", "prompts", "missions", "research")


def format_bytes(size: int) -> str:
    """Render a byte count with a binary unit."""
    value = float(max(size, 0))
    for unit in ("Bytes", "KB", "MB", "GB"):
        if value < 1024:
            if unit == "Bytes":
                return f"{int(value)} Bytes"
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} TB"


def directory_size(path: Path) -> int:
    """Return total size of regular files below ``path``."""
    if not path.exists():
        return 0
    total = 0
    for item in path.rglob("*"):
        try:
            if item.is_file():
                total += item.stat().st_size
        except OSError:
            continue
    return total


class DiagnoseCommand:
    """Run environment, credential, storage, and log checks."""

    name = "diagnose"
    aliases = ("diag",)
    actions = (*CHECKS, "all")
    default_action = "all"

    def help(self) -> str:
        """Return help block."""
        return help_line(
            "/diagnose [check...]",
            "Admin only. Checks: system, keys, storage, logs, all (default).",
        )

    async def execute(self, context: CommandContext) -> CommandResult:
        """Run the requested checks and report failures.

        Args:
            context: Command context.

        Returns:
            Result with per-check outcomes and ``failedChecks``.

        Raises:
            PermissionDeniedError: If the operator is not an admin.
            InputValidationError: If an unknown check is requested.
        """
        context.require_admin()
        requested = [context.action or self.default_action, *context.positional_args]
        unknown = [item for item in requested if item.lower() not in self.actions]
        if unknown:
            raise InputValidationError(
                f"Unknown diagnostic check '{unknown[0]}'.",
                hint=f"Available checks: {', '.join(self.actions)}.",
            )
        selected = {item.lower() for item in requested}
        checks = CHECKS if "all" in selected else tuple(c for c in CHECKS if c in selected)

        context.output(f"Running diagnostics: {', '.join(checks)}")
        results: dict[str, dict[str, Any]] = {}
        for check in checks:
            context.output(f"--- {check.capitalize()} ---")
            if check == "system":
                results[check] = self._system(context)
            elif check == "keys":
                results[check] = await self._keys(context)
            elif check == "storage":
                results[check] = self._storage(context)
            else:
                results[check] = self._logs(context)

        failed = [name for name, outcome in results.items() if not outcome["success"]]
        data = {"results": results, "failedChecks": failed}
        if context.json_output:
            context.output(data)
        if failed:
            context.output(f"Diagnosis complete. Failed checks: {', '.join(failed)}")
            return CommandResult.failure(
                f"Diagnostics failed: {', '.join(failed)}", data=data
            )
        context.output("Diagnosis complete. All checks passed.")
        return CommandResult.ok(data=data)

    @staticmethod
    def _system(context: CommandContext) -> dict[str, Any]:
        info = {
            "platform": platform.platform(),
            "python": sys.version.split()[0],
            "implementation": platform.python_implementation(),
            "cpuCount": os.cpu_count(),
            "pid": os.getpid(),
        }
        for key, value in info.items():
            context.output(f"{key}: {value}")
        return {"success": True, **info}

    @staticmethod
    async def _keys(context: CommandContext) -> dict[str, Any]:
        profile = context.services.profile
        configured = profile.configured_services()
        probe = context.services.key_probe
        probes: dict[str, Any] = {}
        for service, present in configured.items():
            if not present:
                context.output(f"{service}: not configured")
                continue
            key = profile.get_api_key(service)
            if probe is None or key is None:
                context.output(f"{service}: configured (not probed)")
                continue
            try:
                check = await asyncio.wait_for(probe(service, key), PROBE_TIMEOUT_SECONDS)
            except TimeoutError:
                probes[service] = {"valid": False, "detail": "Timed out"}
                context.output(f"{service}: timed out")
                continue
            probes[service] = {"valid": check.valid, "detail": check.detail}
            context.output(f"{service}: {check.detail}")
        success = all(item["valid"] for item in probes.values())
        return {"success": success, "configured": configured, "probes": probes}

    @staticmethod
    def _storage(context: CommandContext) -> dict[str, Any]:
        root = context.services.settings.storage_dir
        directories: dict[str, bool] = {}
        for path in (root, *(root / name for name in STORAGE_SUBDIRS), Path(tempfile.gettempdir())):
            try:
                path.mkdir(parents=True, exist_ok=True)
                accessible = os.access(path, os.R_OK | os.W_OK)
            except OSError as exc:
                context.logger.warn("Storage directory check failed.", {"path": str(path), "error": exc})
                accessible = False
            directories[str(path)] = accessible
            context.output(f"{path}: {'ok' if accessible else 'not accessible'}")
        size = directory_size(root)
        context.output(f"Storage size: {format_bytes(size)}")
        outcome: dict[str, Any] = {
            "success": all(directories.values()),
            "directories": directories,
            "sizeBytes": size,
        }
        try:
            usage = shutil.disk_usage(root)
        except OSError:
            return outcome
        context.output(f"Disk: {format_bytes(usage.free)} free / {format_bytes(usage.total)} total")
        outcome.update({"freeBytes": usage.free, "totalBytes": usage.total})
        return outcome

    @staticmethod
    def _logs(context: CommandContext) -> dict[str, Any]:
        channel = context.services.log_channel
        stats = channel.stats()
        context.output(f"Buffer size: {channel.buffer_size}")
        context.output(f"Buffered entries: {stats.total} (errors: {stats.levels['error']})")
        return {
            "success": True,
            "bufferSize": channel.buffer_size,
            "entries": stats.total,
            "levels": stats.levels,
        }
