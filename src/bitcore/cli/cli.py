"""Typer CLI entrypoint for bitcore."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from bitcore.cli.bootstrap import build_dispatcher, configure_logging
from bitcore.commands.dispatcher import Dispatcher
from bitcore.config import BitcoreSettings, SettingsError, default_settings, load_settings
from bitcore.missions import MissionError
from bitcore.transport.console import ConsoleRunner, ConsoleSinks
from bitcore.transport.websocket import serve

app = typer.Typer(help="bitcore command terminal")
_CONSOLE = Console()
_EXIT_WORDS = {"exit", "quit", "exit()", "quit()"}

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        file_okay=True,
        dir_okay=False,
        help="Path to bitcore config YAML/JSON file.",
    ),
]


def _load(config_file: Path | None) -> BitcoreSettings:
    """Load settings, falling back to defaults when the file is invalid.

    Raises:
        Exit: When even the environment overrides are invalid.
    """
    try:
        settings = load_settings(config_file)
    except SettingsError as exc:
        _CONSOLE.print(
            "[yellow]Settings file is invalid; falling back to defaults.[/yellow]"
        )
        _CONSOLE.print(f"[yellow]Reason: {escape(str(exc))}[/yellow]")
        try:
            settings = default_settings()
        except SettingsError as env_exc:
            _CONSOLE.print(f"[bold red]{escape(str(env_exc))}[/bold red]")
            raise typer.Exit(code=1) from env_exc
    configure_logging(debug=settings.debug_mode)
    return settings


def _start_scheduler(dispatcher: Dispatcher) -> None:
    scheduler = dispatcher.services.scheduler
    if scheduler is None or not dispatcher.services.settings.missions.scheduler_enabled:
        return
    try:
        count = scheduler.start()
    except MissionError as exc:
        _CONSOLE.print(f"[yellow]Mission scheduler not started: {exc}[/yellow]")
        return
    _CONSOLE.print(f"Mission scheduler running with {count} mission(s).", style="cyan")


def _stop_scheduler(dispatcher: Dispatcher) -> None:
    scheduler = dispatcher.services.scheduler
    if scheduler is not None:
        scheduler.stop()


@app.command("run")
def run_command(
    line: Annotated[str, typer.Argument(help="Single command line to execute.")],
    config_file: ConfigOption = None,
) -> None:
    """Execute one command line and exit with its status.

    Args:
        line: Raw command line, e.g. ``/status --json``.
        config_file: Optional config file path override.

    Raises:
        Exit: Raised with 0 on success and 1 on failure.
    """
    settings = _load(config_file)
    dispatcher = build_dispatcher(settings)
    runner = ConsoleRunner(dispatcher, sinks=ConsoleSinks(console=_CONSOLE))
    result = asyncio.run(runner.run_line(line))
    raise typer.Exit(code=0 if result.success else 1)


async def _repl(dispatcher: Dispatcher) -> None:
    runner = ConsoleRunner(dispatcher, sinks=ConsoleSinks(console=_CONSOLE))
    _start_scheduler(dispatcher)
    try:
        while True:
            try:
                raw = await asyncio.to_thread(_CONSOLE.input, runner.prompt)
            except (EOFError, KeyboardInterrupt):
                _CONSOLE.print("\nbye", style="yellow")
                return
            text = raw.strip()
            if text.lower() in _EXIT_WORDS:
                _CONSOLE.print("bye", style="yellow")
                return
            if not text:
                continue
            await runner.run_line(text)
    finally:
        _stop_scheduler(dispatcher)


@app.command("repl")
def repl_command(config_file: ConfigOption = None) -> None:
    """Run the interactive console.

    Args:
        config_file: Optional config file path override.
    """
    settings = _load(config_file)
    _CONSOLE.print(
        Panel(
            f"Operator: {settings.username} ({settings.role.value})\n"
            f"Storage: {settings.storage_dir}\n"
            "Type /help for commands or 'exit' to quit.",
            title="bitcore",
            border_style="cyan",
            expand=True,
        )
    )
    asyncio.run(_repl(build_dispatcher(settings)))


async def _serve(dispatcher: Dispatcher, host: str, port: int) -> None:
    _start_scheduler(dispatcher)
    try:
        await serve(
            dispatcher,
            host=host,
            port=port,
            prompt_timeout=dispatcher.services.settings.prompt_timeout_seconds,
        )
    finally:
        _stop_scheduler(dispatcher)


@app.command("serve")
def serve_command(
    host: Annotated[
        str | None, typer.Option(help="Bind address (defaults to settings).")
    ] = None,
    port: Annotated[
        int | None, typer.Option(help="Bind port (defaults to settings).")
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Serve the command terminal over WebSocket.

    Args:
        host: Optional bind address override.
        port: Optional bind port override.
        config_file: Optional config file path override.
    """
    settings = _load(config_file)
    effective_host = host or settings.websocket.host
    effective_port = port or settings.websocket.port
    _CONSOLE.print(
        f"Serving WebSocket terminal on ws://{effective_host}:{effective_port}",
        style="cyan",
    )
    try:
        asyncio.run(_serve(build_dispatcher(settings), effective_host, effective_port))
    except KeyboardInterrupt:
        _CONSOLE.print("\nstopped", style="yellow")


if __name__ == "__main__":
    app()
