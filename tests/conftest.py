"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from bitcore.chat.service import ChatService
from bitcore.commands.context import CommandServices
from bitcore.commands.dispatcher import Dispatcher
from bitcore.commands.registry import build_default_registry
from bitcore.commands.types import CommandResult
from bitcore.config import BitcoreSettings
from bitcore.memory.store import FileMemoryStore
from bitcore.missions import (
    MissionRepository,
    MissionScheduler,
    MissionService,
    MissionStateStore,
)
from bitcore.observability import LogChannel, set_debug_mode
from bitcore.profile.key_probe import KeyCheck
from bitcore.profile.store import UserProfileStore
from bitcore.prompts.repository import PromptRepository
from bitcore.research.ports import ResearchReport, ResearchRequest
from bitcore.research.telemetry import TelemetryChannel
from bitcore.session.models import Message, TerminalSession


class Capture:
    """Collect values written to output and error sinks."""

    def __init__(self) -> None:
        self.outputs: list[Any] = []
        self.errors: list[Any] = []

    def output(self, value: Any) -> None:
        self.outputs.append(value)

    def error(self, value: Any) -> None:
        self.errors.append(value)

    @property
    def text(self) -> str:
        """Return string outputs joined by newlines."""
        return "\n".join(value for value in self.outputs if isinstance(value, str))


class FakeResearchEngine:
    """Research engine returning a canned report."""

    def __init__(self) -> None:
        self.fail = False
        self.requests: list[ResearchRequest] = []

    async def run(
        self, request: ResearchRequest, telemetry: TelemetryChannel | None
    ) -> ResearchReport:
        self.requests.append(request)
        if telemetry is not None:
            telemetry.emit_thought("Searching sources.", stage="search")
        if self.fail:
            raise RuntimeError("engine exploded")
        return ResearchReport(
            query=request.query,
            summary=f"Summary of {request.query}",
            learnings=("first learning",),
            sources=("https://example.com/source",),
        )


class FakeChatBackend:
    """Chat backend echoing the last user message."""

    def __init__(self) -> None:
        self.calls: list[tuple[Message, ...]] = []

    async def reply(
        self, messages: Sequence[Message], model: str, character: str
    ) -> str:
        del model, character
        self.calls.append(tuple(messages))
        return f"echo: {messages[-1].content}"


class FakeKeyProbe:
    """Key probe treating keys prefixed with ``good`` as valid."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, service: str, key: str) -> KeyCheck:
        self.calls.append((service, key))
        if key.startswith("good"):
            return KeyCheck(service=service, valid=True, detail="Valid")
        return KeyCheck(service=service, valid=False, detail="Invalid (HTTP 401)")


class FakeSocket:
    """In-memory stand-in for a websockets server connection."""

    def __init__(self, incoming: Sequence[str] = ()) -> None:
        self.incoming = list(incoming)
        self.sent: list[str] = []

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def _iterate(self) -> AsyncIterator[str]:
        for message in self.incoming:
            yield message

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    @property
    def frames(self) -> list[dict[str, Any]]:
        """Return decoded outbound frames in send order."""
        return [json.loads(message) for message in self.sent]


@pytest.fixture(autouse=True)
def _reset_debug_mode() -> Any:
    """Keep debug-mode overrides from leaking between tests."""
    set_debug_mode(None)
    yield
    set_debug_mode(None)


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Temporary bitcore storage root."""
    return tmp_path / ".bitcore"


@pytest.fixture
def settings(storage_dir: Path) -> BitcoreSettings:
    """Settings rooted in the temporary storage directory."""
    return BitcoreSettings(storage_dir=storage_dir)


@pytest.fixture
def channel() -> LogChannel:
    """Fresh log channel isolated from the process-wide one."""
    return LogChannel()


@pytest.fixture
def research_engine() -> FakeResearchEngine:
    """Canned research engine."""
    return FakeResearchEngine()


@pytest.fixture
def chat_backend() -> FakeChatBackend:
    """Echoing chat backend."""
    return FakeChatBackend()


@pytest.fixture
def key_probe() -> FakeKeyProbe:
    """Offline key probe."""
    return FakeKeyProbe()


@pytest.fixture
def services(
    settings: BitcoreSettings,
    channel: LogChannel,
    research_engine: FakeResearchEngine,
    chat_backend: FakeChatBackend,
    key_probe: FakeKeyProbe,
) -> CommandServices:
    """Collaborator bundle wired to temporary storage and fakes."""
    storage = settings.storage_dir
    memory = FileMemoryStore(root_dir=storage / "memory")
    missions = MissionService(
        repository=MissionRepository(missions_dir=storage / "missions"),
        state_store=MissionStateStore(storage / "missions" / "state.json"),
        research=research_engine,
    )
    return CommandServices(
        settings=settings,
        profile=UserProfileStore(root_dir=storage),
        log_channel=channel,
        memory=memory,
        prompts=PromptRepository(prompts_dir=storage / "prompts"),
        missions=missions,
        scheduler=MissionScheduler(service=missions, settings=settings.missions),
        research=research_engine,
        chat=ChatService(backend=chat_backend, memory=memory),
        key_probe=key_probe,
    )


@pytest.fixture
def dispatcher(services: CommandServices) -> Dispatcher:
    """Dispatcher over the built-in handlers."""
    return Dispatcher(build_default_registry(), services)


@pytest.fixture
def session() -> TerminalSession:
    """Fresh terminal session."""
    return TerminalSession()


@pytest.fixture
def run_line(
    dispatcher: Dispatcher, session: TerminalSession
) -> Callable[..., tuple[CommandResult, Capture]]:
    """Dispatch one line synchronously and capture sink output."""

    def _run(line: str, **kwargs: Any) -> tuple[CommandResult, Capture]:
        capture = Capture()
        target = kwargs.pop("session", session)
        result = asyncio.run(
            dispatcher.dispatch_line(
                line,
                session=target,
                output=capture.output,
                error=capture.error,
                **kwargs,
            )
        )
        return result, capture

    return _run


@pytest.fixture
def socket_factory() -> Callable[..., FakeSocket]:
    """Build in-memory sockets."""
    return FakeSocket


@pytest.fixture
def write_mission(storage_dir: Path) -> Callable[[str, str], Path]:
    """Write one mission yaml file under the storage directory."""

    def _write(name: str, content: str) -> Path:
        path = storage_dir / "missions" / f"{name}.mission.yaml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
