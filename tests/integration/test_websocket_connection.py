"""Integration tests for the WebSocket command adapter."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from bitcore.commands.context import CommandContext, CommandServices
from bitcore.commands.dispatcher import Dispatcher
from bitcore.commands.help import help_line
from bitcore.commands.registry import build_default_registry
from bitcore.commands.types import CommandResult
from bitcore.transport.websocket import PromptBroker, WebSocketConnection

ACK = {"type": "output", "data": "", "keepDisabled": False}


class _SlowCommand:
    """Handler that yields to the loop before writing."""

    name = "slow"
    aliases: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    default_action = None

    def help(self) -> str:
        return help_line("/slow", "Sleep briefly.")

    async def execute(self, context: CommandContext) -> CommandResult:
        await asyncio.sleep(0.05)
        context.output("slow done")
        return CommandResult.ok()


def _exchange(
    dispatcher: Dispatcher, socket: Any, *messages: Any
) -> WebSocketConnection:
    """Feed messages through one connection and wait for every reply."""

    async def _scenario() -> WebSocketConnection:
        connection = WebSocketConnection(socket, dispatcher)
        connection.start()
        for message in messages:
            connection.receive(message if isinstance(message, str) else json.dumps(message))
        await connection.drain()
        await connection.shutdown()
        return connection

    return asyncio.run(_scenario())


@pytest.mark.integration
def test_command_frame_ends_with_acknowledgement(
    dispatcher: Dispatcher, socket_factory: Callable[..., Any]
) -> None:
    """A line command produces output frames then the ack frame last."""
    # Arrange
    socket = socket_factory()

    # Act
    _exchange(dispatcher, socket, {"type": "command", "line": "/status"})

    # Assert
    frames = socket.frames
    assert frames[0] == {"type": "output", "data": "--- Status ---"}
    assert frames[-1] == ACK
    assert frames.count(ACK) == 1


@pytest.mark.integration
def test_commands_are_processed_in_arrival_order(
    services: CommandServices, socket_factory: Callable[..., Any]
) -> None:
    """A slow command finishes and is acknowledged before the next starts."""
    # Arrange
    dispatcher = Dispatcher(build_default_registry((_SlowCommand(),)), services)
    socket = socket_factory()

    # Act
    _exchange(
        dispatcher,
        socket,
        {"type": "command", "line": "/slow"},
        {"type": "command", "line": "/status"},
    )

    # Assert
    frames = socket.frames
    slow_done = frames.index({"type": "output", "data": "slow done"})
    first_ack = frames.index(ACK)
    status_start = frames.index({"type": "output", "data": "--- Status ---"})
    assert slow_done < first_ack < status_start
    assert frames[-1] == ACK
    assert frames.count(ACK) == 2


@pytest.mark.integration
def test_ping_is_answered_immediately(
    dispatcher: Dispatcher, socket_factory: Callable[..., Any]
) -> None:
    """Pings produce a pong without an acknowledgement."""
    # Arrange
    socket = socket_factory()

    # Act
    _exchange(dispatcher, socket, {"type": "ping"})

    # Assert
    assert socket.frames == [{"type": "pong"}]


@pytest.mark.integration
@pytest.mark.parametrize(
    ("message", "error"),
    [
        ("not json", "Invalid message: expected JSON."),
        ("[1, 2]", "Invalid message: expected an object."),
        ({"type": "weird"}, "Unsupported message type: weird"),
        ({"type": "command"}, "Invalid command message: expected 'line' or 'name'."),
        ({"type": "chat_message", "message": "hi"}, "Chat mode not active. Use /chat first."),
    ],
)
def test_malformed_frames_get_error_and_ack(
    dispatcher: Dispatcher,
    socket_factory: Callable[..., Any],
    message: Any,
    error: str,
) -> None:
    """Rejected frames answer with an error frame and re-enable input."""
    # Arrange
    socket = socket_factory()

    # Act
    _exchange(dispatcher, socket, message)

    # Assert
    assert socket.frames == [{"type": "error", "data": error}, ACK]


@pytest.mark.integration
def test_structured_command_frame(
    dispatcher: Dispatcher, socket_factory: Callable[..., Any]
) -> None:
    """Structured frames dispatch with name, action and flags."""
    # Arrange
    socket = socket_factory()

    # Act
    _exchange(
        dispatcher,
        socket,
        {"type": "command", "name": "logs", "action": "settings", "flags": {"json": True}},
    )

    # Assert
    frames = socket.frames
    payload = json.loads(frames[0]["data"])
    assert payload["availableLevels"] == ["debug", "info", "warn", "error"]
    assert frames[-1] == ACK


@pytest.mark.integration
def test_invalid_structured_payload_is_rejected(
    dispatcher: Dispatcher, socket_factory: Callable[..., Any]
) -> None:
    """Bad structured flags are rejected before dispatch."""
    # Arrange
    socket = socket_factory()

    # Act
    _exchange(
        dispatcher,
        socket,
        {"type": "command", "name": "logs", "flags": {"limit": ["x"]}},
    )

    # Assert
    frames = socket.frames
    assert [frame["type"] for frame in frames] == ["error", "output"]
    assert frames[-1] == ACK


@pytest.mark.integration
def test_chat_flow_switches_modes(
    dispatcher: Dispatcher, socket_factory: Callable[..., Any]
) -> None:
    """Entering chat, one turn, and `/exit` emit mode changes around the turn."""
    # Arrange
    socket = socket_factory()

    # Act
    connection = _exchange(
        dispatcher,
        socket,
        {"type": "command", "line": "/chat"},
        {"type": "chat_message", "message": "hello"},
        {"type": "chat_message", "message": "/exit"},
    )

    # Assert
    frames = socket.frames
    mode_changes = [frame for frame in frames if frame["type"] == "mode_change"]
    assert mode_changes == [
        {"type": "mode_change", "mode": "chat", "prompt": "[chat] > "},
        {"type": "mode_change", "mode": "command", "prompt": "> "},
    ]
    assert {"type": "output", "data": "echo: hello"} in frames
    assert frames.count(ACK) == 3
    assert frames[-2]["type"] == "mode_change"
    assert frames[-1] == ACK
    assert connection.session.chat_active is False


@pytest.mark.integration
def test_command_frames_follow_chat_mode_like_the_console(
    dispatcher: Dispatcher, socket_factory: Callable[..., Any]
) -> None:
    """In chat mode, plain lines and `/exit` in command frames go to chat."""
    # Arrange
    socket = socket_factory()

    # Act
    connection = _exchange(
        dispatcher,
        socket,
        {"type": "command", "line": "/chat"},
        {"type": "command", "line": "hello"},
        {"type": "command", "line": "/exit"},
    )

    # Assert
    frames = socket.frames
    assert not [frame for frame in frames if frame["type"] == "error"]
    assert {"type": "output", "data": "echo: hello"} in frames
    assert {"type": "output", "data": "Exited chat mode."} in frames
    assert frames[-2] == {"type": "mode_change", "mode": "command", "prompt": "> "}
    assert frames[-1] == ACK
    assert frames.count(ACK) == 3
    assert connection.session.chat_active is False


@pytest.mark.integration
def test_prompt_round_trip(
    dispatcher: Dispatcher,
    services: CommandServices,
    socket_factory: Callable[..., Any],
) -> None:
    """Handlers can ask the client for input mid-dispatch."""
    # Arrange
    socket = socket_factory()

    async def _scenario() -> None:
        connection = WebSocketConnection(socket, dispatcher)
        connection.start()
        connection.receive(json.dumps({"type": "command", "line": "/keys set venice"}))
        for _ in range(100):
            if connection.prompts.pending:
                break
            await asyncio.sleep(0.01)
        prompt_id = connection.prompts.pending[0]
        connection.receive(
            json.dumps({"type": "prompt_response", "id": prompt_id, "value": "typed-key"})
        )
        await connection.drain()
        await connection.shutdown()

    # Act
    asyncio.run(_scenario())

    # Assert
    frames = socket.frames
    prompt = next(frame for frame in frames if frame["type"] == "prompt")
    assert prompt["text"] == "Enter venice API key:"
    assert prompt["hidden"] is True
    assert services.profile.get_api_key("venice") == "typed-key"
    assert frames[-1] == ACK


@pytest.mark.integration
def test_disconnect_releases_pending_prompt(
    dispatcher: Dispatcher,
    services: CommandServices,
    socket_factory: Callable[..., Any],
) -> None:
    """Closing mid-prompt resolves it empty and drops later frames."""
    # Arrange
    socket = socket_factory()

    async def _scenario() -> None:
        connection = WebSocketConnection(socket, dispatcher)
        connection.start()
        connection.receive(json.dumps({"type": "command", "line": "/keys set venice"}))
        for _ in range(100):
            if connection.prompts.pending:
                break
            await asyncio.sleep(0.01)
        await connection.shutdown()

    # Act
    asyncio.run(_scenario())

    # Assert
    assert socket.frames[-1]["type"] == "prompt"
    assert services.profile.get_api_key("venice") is None


@pytest.mark.integration
def test_run_drops_queued_work_on_disconnect(
    dispatcher: Dispatcher, socket_factory: Callable[..., Any]
) -> None:
    """Messages still queued when the client leaves are discarded."""
    # Arrange
    socket = socket_factory(
        [
            json.dumps({"type": "ping"}),
            json.dumps({"type": "command", "line": "/status"}),
        ]
    )

    # Act
    asyncio.run(WebSocketConnection(socket, dispatcher).run())

    # Assert
    assert socket.frames == [{"type": "pong"}]


@pytest.mark.integration
def test_prompt_broker_timeout_and_resolution() -> None:
    """Prompts time out to None and resolve by id or as the only pending one."""
    # Arrange
    sent: list[dict[str, Any]] = []
    broker = PromptBroker(sent.append, default_timeout=0.01)

    async def _scenario() -> tuple[str | None, str | None, bool, int]:
        timed_out = await broker.ask("first?")
        task = asyncio.create_task(broker.ask("second?", timeout=5))
        await asyncio.sleep(0)
        resolved = broker.resolve(None, 42)
        answer = await task
        stray = broker.resolve("missing", "x")
        third = asyncio.create_task(broker.ask("third?", timeout=5))
        await asyncio.sleep(0)
        cancelled = broker.cancel_all()
        assert await third is None
        return timed_out, answer, resolved and not stray, cancelled

    # Act
    timed_out, answer, resolution_ok, cancelled = asyncio.run(_scenario())

    # Assert
    assert timed_out is None
    assert answer == "42"
    assert resolution_ok is True
    assert cancelled == 1
    assert [frame["text"] for frame in sent] == ["first?", "second?", "third?"]
    assert sent[0]["timeoutMs"] == 10
    assert broker.pending == ()
