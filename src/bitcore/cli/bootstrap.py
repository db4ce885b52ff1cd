"""CLI bootstrap: logging, settings, collaborators, dispatcher."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from bitcore.chat.service import ChatBackend, ChatService
from bitcore.commands.context import CommandServices
from bitcore.commands.dispatcher import Dispatcher
from bitcore.commands.registry import build_default_registry
from bitcore.commands.types import CommandHandler
from bitcore.config import BitcoreSettings, load_settings
from bitcore.memory.store import FileMemoryStore
from bitcore.missions import (
    MissionRepository,
    MissionScheduler,
    MissionService,
    MissionStateStore,
)
from bitcore.observability import log_channel, set_debug_mode
from bitcore.profile.key_probe import probe_api_key
from bitcore.profile.store import UserProfileStore
from bitcore.prompts.repository import PromptRepository
from bitcore.research.ports import ResearchEngine

_LOGGING_CONFIGURED = False


def configure_logging(*, debug: bool = False) -> None:
    """Configure Rich-backed logging once for CLI commands.

    Log records go to stderr so command output on stdout stays parseable.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if _LOGGING_CONFIGURED:
        return
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
            )
        ],
    )
    _LOGGING_CONFIGURED = True


def build_services(
    settings: BitcoreSettings,
    *,
    research: ResearchEngine | None = None,
    chat_backend: ChatBackend | None = None,
) -> CommandServices:
    """Wire file-backed collaborators under the storage directory.

    Args:
        settings: Loaded settings.
        research: Optional research engine.
        chat_backend: Optional chat model backend.

    Returns:
        Collaborator bundle for the dispatcher.
    """
    set_debug_mode(settings.debug_mode)
    log_channel.configure(buffer_size=settings.log_buffer_size)
    storage: Path = settings.storage_dir
    missions_dir = storage / "missions"
    memory = FileMemoryStore(root_dir=storage / "memory")
    missions = MissionService(
        repository=MissionRepository(missions_dir=missions_dir),
        state_store=MissionStateStore(missions_dir / "state.json"),
        research=research,
        stale_after=timedelta(minutes=settings.missions.stale_run_minutes),
    )
    return CommandServices(
        settings=settings,
        profile=UserProfileStore(
            root_dir=storage, username=settings.username, role=settings.role
        ),
        log_channel=log_channel,
        memory=memory,
        prompts=PromptRepository(prompts_dir=storage / "prompts"),
        missions=missions,
        scheduler=MissionScheduler(service=missions, settings=settings.missions),
        research=research,
        chat=ChatService(backend=chat_backend, memory=memory),
        key_probe=probe_api_key,
    )


def build_dispatcher(
    settings: BitcoreSettings | None = None,
    *,
    config_file: Path | None = None,
    research: ResearchEngine | None = None,
    chat_backend: ChatBackend | None = None,
    extra_handlers: Iterable[CommandHandler] = (),
) -> Dispatcher:
    """Build a dispatcher over the default registry.

    Args:
        settings: Pre-loaded settings; loaded from disk when ``None``.
        config_file: Optional config path used when loading settings.
        research: Optional research engine.
        chat_backend: Optional chat model backend.
        extra_handlers: Additional handlers registered after the built-ins.

    Returns:
        Ready dispatcher.

    Raises:
        SettingsError: If settings cannot be loaded.
    """
    effective = settings or load_settings(config_file)
    services = build_services(effective, research=research, chat_backend=chat_backend)
    return Dispatcher(build_default_registry(tuple(extra_handlers)), services)
