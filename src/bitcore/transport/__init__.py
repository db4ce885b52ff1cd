"""Transport front-ends for the command dispatcher."""

from bitcore.transport.console import ConsoleRunner, ConsoleSinks
from bitcore.transport.websocket import (
    PromptBroker,
    WebSocketCommandAdapter,
    WebSocketConnection,
    serve,
)

__all__ = [
    "ConsoleRunner",
    "ConsoleSinks",
    "PromptBroker",
    "WebSocketCommandAdapter",
    "WebSocketConnection",
    "serve",
]
