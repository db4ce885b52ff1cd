"""WebSocket command adapter: frames in, dispatches serialised per connection."""

from __future__ import annotations

import asyncio
import json
import secrets
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import uuid4

from websockets.asyncio.server import serve as websockets_serve
from websockets.exceptions import ConnectionClosed

from bitcore.chat.service import routes_to_chat
from bitcore.commands.acknowledgement import (
    DEFAULT_PROMPTS,
    AcknowledgementController,
)
from bitcore.commands.dispatcher import Dispatcher, structured_command
from bitcore.commands.emitter import serialize_value
from bitcore.commands.errors import InputValidationError, handle_command_error
from bitcore.commands.types import CommandResult, ModeChange
from bitcore.observability import create_module_logger
from bitcore.research.telemetry import TelemetryChannel
from bitcore.session.models import TerminalMode, TerminalSession

DEFAULT_PROMPT_TIMEOUT_SECONDS = 120.0

_LOGGER = create_module_logger("transport.websocket")

FrameSender = Callable[[dict[str, Any]], None]


class FrameSocket(Protocol):
    """Subset of the websockets connection API used by the adapter."""

    async def send(self, message: str) -> None:
        """Send one text message."""

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        """Iterate inbound messages until the connection closes."""


def output_frame(value: Any) -> dict[str, Any]:
    """Wrap an output-sink value in a protocol frame.

    Strings become ``output`` frames, mappings carrying ``type`` pass through,
    anything else is serialized to text.
    """
    if isinstance(value, str):
        return {"type": "output", "data": value}
    if isinstance(value, dict) and isinstance(value.get("type"), str):
        return value
    return {"type": "output", "data": serialize_value(value)}


def error_frame(value: Any) -> dict[str, Any]:
    """Wrap an error-sink value in an ``error`` frame."""
    return {"type": "error", "data": serialize_value(value)}


class PromptBroker:
    """Round-trip prompts to the client and resolve them from responses."""

    def __init__(
        self,
        send: FrameSender,
        *,
        default_timeout: float = DEFAULT_PROMPT_TIMEOUT_SECONDS,
    ) -> None:
        """Create broker.

        Args:
            send: Frame sender for outbound ``prompt`` frames.
            default_timeout: Seconds before an unanswered prompt resolves ``None``.
        """
        self._send = send
        self._default_timeout = default_timeout
        self._pending: dict[str, asyncio.Future[str | None]] = {}

    @property
    def pending(self) -> tuple[str, ...]:
        """Return ids of unanswered prompts."""
        return tuple(self._pending)

    async def ask(
        self,
        text: str,
        *,
        hidden: bool = False,
        timeout: float | None = None,
    ) -> str | None:
        """Send a prompt frame and wait for the matching response.

        Args:
            text: Prompt text.
            hidden: Whether the client should mask input.
            timeout: Seconds to wait; broker default when ``None``.

        Returns:
            Client value, or ``None`` on timeout or disconnect.
        """
        limit = self._default_timeout if timeout is None else timeout
        prompt_id = uuid4().hex
        future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        self._pending[prompt_id] = future
        self._send(
            {
                "type": "prompt",
                "id": prompt_id,
                "text": text,
                "hidden": hidden,
                "timeoutMs": int(limit * 1000),
            }
        )
        try:
            return await asyncio.wait_for(future, timeout=limit)
        except TimeoutError:
            _LOGGER.warn("Prompt timed out.", {"promptId": prompt_id})
            return None
        finally:
            self._pending.pop(prompt_id, None)

    def resolve(self, prompt_id: str | None, value: object) -> bool:
        """Resolve a pending prompt.

        A missing id resolves the only pending prompt, if exactly one exists.

        Returns:
            ``True`` when a pending prompt was resolved.
        """
        if prompt_id is None and len(self._pending) == 1:
            prompt_id = next(iter(self._pending))
        future = self._pending.get(prompt_id) if prompt_id else None
        if future is None or future.done():
            _LOGGER.warn("Prompt response without a pending prompt.", {"promptId": prompt_id})
            return False
        future.set_result(None if value is None else str(value))
        return True

    def cancel_all(self) -> int:
        """Resolve every pending prompt with ``None``."""
        cancelled = 0
        for future in self._pending.values():
            if not future.done():
                future.set_result(None)
                cancelled += 1
        return cancelled


@dataclass(frozen=True)
class _Inbound:
    kind: str
    payload: dict[str, Any]


class WebSocketConnection:
    """One client connection: session, inbound FIFO, outbound FIFO."""

    def __init__(
        self,
        websocket: FrameSocket,
        dispatcher: Dispatcher,
        *,
        session: TerminalSession | None = None,
        prompt_timeout: float = DEFAULT_PROMPT_TIMEOUT_SECONDS,
    ) -> None:
        """Create connection state.

        Args:
            websocket: Client socket.
            dispatcher: Shared command dispatcher.
            session: Optional pre-built session.
            prompt_timeout: Default prompt timeout in seconds.
        """
        self._websocket = websocket
        self._dispatcher = dispatcher
        self.session = session or TerminalSession(csrf_token=secrets.token_urlsafe(16))
        self.prompts = PromptBroker(self.send, default_timeout=prompt_timeout)
        self.telemetry = TelemetryChannel(self.send)
        self._acknowledgement = AcknowledgementController()
        self._inbound: asyncio.Queue[_Inbound | None] = asyncio.Queue()
        self._outbound: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._closed = False
        self._tasks: tuple[asyncio.Task[None], ...] = ()
        self._logger = _LOGGER.with_meta({"sessionId": self.session.session_id})

    @property
    def closed(self) -> bool:
        """Return whether the connection stopped accepting frames."""
        return self._closed

    def send(self, frame: dict[str, Any]) -> None:
        """Queue one outbound frame; dropped once the connection is closing."""
        if self._closed:
            return
        self._outbound.put_nowait(frame)

    def start(self) -> None:
        """Start the worker and writer tasks."""
        if self._tasks:
            return
        self._tasks = (
            asyncio.create_task(self._work()),
            asyncio.create_task(self._write_frames()),
        )
        self._logger.info("WebSocket client connected.")

    async def run(self) -> None:
        """Serve the connection until the client disconnects."""
        self.start()
        try:
            async for raw in self._websocket:
                self.receive(raw)
        except ConnectionClosed as exc:
            self._logger.warn("WebSocket closed abnormally.", {"error": exc})
        finally:
            await self.shutdown()

    async def drain(self) -> None:
        """Wait until every queued inbound message has been processed."""
        await self._inbound.join()

    def receive(self, raw: str | bytes) -> None:
        """Route one inbound message.

        ``ping`` and ``prompt_response`` are answered immediately; everything
        else joins the per-connection FIFO.
        """
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            self._enqueue("invalid", {"error": "Invalid message: expected JSON."})
            return
        if not isinstance(message, dict):
            self._enqueue("invalid", {"error": "Invalid message: expected an object."})
            return
        frame_type = message.get("type")
        if frame_type == "ping":
            self.send({"type": "pong"})
        elif frame_type == "prompt_response":
            self.prompts.resolve(message.get("id"), message.get("value"))
        elif frame_type in {"command", "chat_message"}:
            self._enqueue(frame_type, message)
        else:
            self._enqueue("invalid", {"error": f"Unsupported message type: {frame_type}"})

    async def shutdown(self) -> None:
        """Drop queued work, release prompts, and let a running handler finish."""
        if not self._closed:
            self._logger.info("WebSocket client disconnected.")
        self._closed = True
        while not self._inbound.empty():
            self._inbound.get_nowait()
            self._inbound.task_done()
        self.prompts.cancel_all()
        self._inbound.put_nowait(None)
        self._outbound.put_nowait(None)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _enqueue(self, kind: str, payload: dict[str, Any]) -> None:
        if not self._closed:
            self._inbound.put_nowait(_Inbound(kind, payload))

    async def _work(self) -> None:
        while True:
            item = await self._inbound.get()
            if item is None:
                self._inbound.task_done()
                return
            try:
                await self._process(item)
            except Exception as exc:  # noqa: BLE001
                self._logger.error("WebSocket message processing failed.", {"error": exc})
                self.send(error_frame(f"Server error: {exc}"))
                self._acknowledge(CommandResult.failure(str(exc)))
            finally:
                self._inbound.task_done()

    async def _write_frames(self) -> None:
        while True:
            frame = await self._outbound.get()
            if frame is None:
                return
            try:
                await self._websocket.send(json.dumps(frame, default=str))
            except ConnectionClosed:
                self._closed = True
                return

    async def _process(self, item: _Inbound) -> None:
        if item.kind == "invalid":
            self._reject(item.payload["error"])
        elif item.kind == "chat_message":
            await self._chat(item.payload)
        else:
            await self._command(item.payload)

    async def _command(self, message: dict[str, Any]) -> None:
        common: dict[str, Any] = {
            "session": self.session,
            "is_websocket": True,
            "output": lambda value: self.send(output_frame(value)),
            "error": lambda value: self.send(error_frame(value)),
            "send": self.send,
            "ws_prompt": self.prompts.ask,
            "telemetry": self.telemetry,
            "csrf_token": message.get("csrfToken"),
        }
        line = message.get("line")
        if isinstance(line, str):
            if (
                self.session.chat_active
                and self._dispatcher.services.chat is not None
                and routes_to_chat(line)
            ):
                await self._chat({"message": line.strip()})
                return
            await self._dispatcher.dispatch_line(line, **common)
            return
        name = message.get("name")
        if not isinstance(name, str):
            self._reject("Invalid command message: expected 'line' or 'name'.")
            return
        try:
            parsed = structured_command(
                name,
                message.get("positionalArgs") or (),
                message.get("flags") or {},
            )
        except InputValidationError as exc:
            self._reject(str(exc))
            return
        action = message.get("action")
        await self._dispatcher.dispatch(
            parsed, action=action if isinstance(action, str) else None, **common
        )

    async def _chat(self, message: dict[str, Any]) -> None:
        text = message.get("message")
        chat = self._dispatcher.services.chat
        if not isinstance(text, str):
            self._reject("Invalid chat message: expected 'message'.")
            return
        if chat is None or not self.session.chat_active:
            self._reject("Chat mode not active. Use /chat first.")
            return
        try:
            turn = await chat.handle_message(
                self.session, text, lambda value: self.send(output_frame(value))
            )
        except Exception as exc:  # noqa: BLE001
            result = handle_command_error(
                exc,
                error_sink=lambda value: self.send(error_frame(value)),
                output_sink=lambda value: self.send(output_frame(value)),
                logger=self._logger,
            )
            self._acknowledge(result)
            return
        mode_change = (
            ModeChange(
                mode=TerminalMode.COMMAND.value,
                prompt=DEFAULT_PROMPTS[TerminalMode.COMMAND],
            )
            if turn.exited
            else None
        )
        self._acknowledge(CommandResult.ok(mode_change=mode_change))

    def _reject(self, message: str) -> None:
        self._logger.warn("Rejected WebSocket message.", {"reason": message})
        self.send(error_frame(message))
        self._acknowledge(CommandResult.failure(message))

    def _acknowledge(self, result: CommandResult) -> None:
        self._acknowledgement.finalize(
            result, session=self.session, is_websocket=True, send=self.send
        )


class WebSocketCommandAdapter:
    """Connection handler factory bound to one dispatcher."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        prompt_timeout: float = DEFAULT_PROMPT_TIMEOUT_SECONDS,
    ) -> None:
        """Create adapter.

        Args:
            dispatcher: Shared command dispatcher.
            prompt_timeout: Default prompt timeout in seconds.
        """
        self._dispatcher = dispatcher
        self._prompt_timeout = prompt_timeout
        self._connections: set[WebSocketConnection] = set()

    @property
    def connections(self) -> int:
        """Return number of live connections."""
        return len(self._connections)

    async def handle(self, websocket: FrameSocket) -> None:
        """Serve one client connection."""
        connection = WebSocketConnection(
            websocket, self._dispatcher, prompt_timeout=self._prompt_timeout
        )
        self._connections.add(connection)
        try:
            await connection.run()
        finally:
            self._connections.discard(connection)


async def serve(
    dispatcher: Dispatcher,
    *,
    host: str,
    port: int,
    prompt_timeout: float = DEFAULT_PROMPT_TIMEOUT_SECONDS,
    stop: asyncio.Future[None] | None = None,
) -> None:
    """Run the WebSocket server until ``stop`` resolves (forever by default).

    Args:
        dispatcher: Shared command dispatcher.
        host: Bind address.
        port: Bind port.
        prompt_timeout: Default prompt timeout in seconds.
        stop: Optional future ending the server.
    """
    adapter = WebSocketCommandAdapter(dispatcher, prompt_timeout=prompt_timeout)
    waiter = stop if stop is not None else asyncio.get_running_loop().create_future()
    async with websockets_serve(adapter.handle, host, port):
        _LOGGER.info("WebSocket server listening.", {"host": host, "port": port})
        await waiter
    _LOGGER.info("WebSocket server stopped.")
