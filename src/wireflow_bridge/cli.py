"""WireFlow Bridge CLI.

Default mode serves: listen for the editor on a WebSocket and accept
requests as JSON lines on stdin.

Usage:
    wireflow-bridge                          # Serve on 127.0.0.1:3001
    wireflow-bridge --port 4001              # Custom port
    wireflow-bridge --config bridge.yaml     # Settings from a YAML file
    wireflow-bridge --request-timeout 30     # Seconds to wait per request

    wireflow-bridge --port 4001 serve        # Same as the default mode
    wireflow-bridge config                   # Show effective configuration
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys

import click
from pydantic import ValidationError

from .config import BridgeConfig
from .errors import BindError
from .gateway import CommandGateway
from .protocol.events import Event, EventType
from .transport.stdio_adapter import StdioProtocolAdapter

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    """Send all logging to stderr; stdout carries protocol lines only."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(level)


def _load_config(ctx: click.Context, **options: object) -> BridgeConfig:
    try:
        return BridgeConfig.load(**options)  # type: ignore[arg-type]
    except (OSError, ValueError, ValidationError) as e:
        raise click.UsageError(f"Invalid configuration: {e}", ctx=ctx) from e


def _log_editor_event(event: Event) -> None:
    data = event.data if isinstance(event.data, dict) else {}
    if event.type == EventType.CLIENT_CONNECTED.value:
        logger.info("WireFlow connected")
    elif event.type == EventType.CLIENT_DISCONNECTED.value:
        logger.info(f"WireFlow disconnected: {data.get('reason')}")
    elif event.type == EventType.STATE_CHANGED.value:
        logger.info(f"State changed: {data.get('changeType')}")


@click.group(invoke_without_command=True)
@click.option("--host", default=None, help="Host to bind the editor WebSocket to")
@click.option("--port", type=int, default=None, help="Port for the editor WebSocket (default 3001)")
@click.option(
    "--request-timeout",
    type=float,
    default=None,
    help="Seconds to wait for each editor reply (default 10)",
)
@click.option(
    "--ping-interval",
    type=float,
    default=None,
    help="Seconds between liveness pings (default 15)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML configuration file",
)
@click.option("--log-level", default=None, help="Logging level (default WARNING)")
@click.pass_context
def main(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    request_timeout: float | None,
    ping_interval: float | None,
    config_file: str | None,
    log_level: str | None,
) -> None:
    """WireFlow Bridge - drive the WireFlow editor from an automation agent.

    Listens for the editor on a WebSocket and relays JSON-line requests from
    stdin, writing each correlated response to stdout.
    """
    config = _load_config(
        ctx,
        config_file=config_file,
        host=host,
        port=port,
        request_timeout=request_timeout,
        ping_interval=ping_interval,
        log_level=log_level,
    )
    ctx.obj = config

    # If a subcommand is invoked, let it handle everything
    if ctx.invoked_subcommand is not None:
        return

    _run(config)


def _run(config: BridgeConfig) -> None:
    _configure_logging(config.log_level)
    exit_code = asyncio.run(_serve(config))
    sys.exit(exit_code)


async def _serve(config: BridgeConfig) -> int:
    """Run until stdin closes or a termination signal arrives."""
    gateway = CommandGateway.from_config(config)
    try:
        await gateway.start()
    except BindError as e:
        click.echo(f"Failed to start WebSocket server: {e}", err=True)
        return 1

    click.echo(f"Waiting for WireFlow on ws://{config.host}:{gateway.connection.port}", err=True)
    gateway.on_event(_log_editor_event)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    adapter = StdioProtocolAdapter(gateway)
    adapter_task = asyncio.create_task(adapter.run())
    stop_task = asyncio.create_task(stop_requested.wait())

    try:
        await asyncio.wait({adapter_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        click.echo("Shutting down", err=True)
        # Sweeps pending requests so the adapter can flush their failures
        await gateway.stop()
        await adapter.stop()
        await adapter_task
        stop_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stop_task

    return 0


@main.command()
@click.pass_obj
def serve(config: BridgeConfig) -> None:
    """Serve the editor WebSocket and relay stdin requests (the default)."""
    _run(config)


@main.command("config")
@click.pass_obj
def show_config(config: BridgeConfig) -> None:
    """Show the effective configuration as JSON.

    Examples:

        wireflow-bridge config
        wireflow-bridge --port 4001 config
    """
    click.echo(json.dumps(config.model_dump(), indent=2))


if __name__ == "__main__":
    main()
