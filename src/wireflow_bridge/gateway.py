"""Command gateway: the public entry point for driving the editor.

Usage:
    gateway = CommandGateway.from_config(BridgeConfig(port=3001))
    await gateway.start()

    response = await gateway.send(Request.create_rectangle(10, 10, 50, 30))
    if response.success:
        print(response.data["elementId"])

    await gateway.stop()

``send`` never raises for protocol failures. A missing editor, a timeout
and a local write failure all come back as a failed Response with code
``NOT_CONNECTED``, ``TIMEOUT`` or ``INTERNAL_ERROR``; editor-side errors are
returned exactly as the editor sent them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .config import BridgeConfig
from .connection import ConnectionManager, ConnectionStatus
from .dispatcher import Dispatcher, EventCallback
from .pending import PendingRequestTable
from .protocol.commands import Request
from .protocol.events import Response
from .protocol.wire import generate_correlation_id

logger = logging.getLogger(__name__)


class CommandGateway:
    """Sends commands to the editor and awaits their correlated replies."""

    def __init__(
        self,
        connection: ConnectionManager,
        pending: PendingRequestTable,
        dispatcher: Dispatcher,
        request_timeout: float | None = None,
    ) -> None:
        self.connection = connection
        self.pending = pending
        self.dispatcher = dispatcher
        self.request_timeout = (
            connection.config.request_timeout if request_timeout is None else request_timeout
        )

    @classmethod
    def from_config(cls, config: BridgeConfig | None = None) -> CommandGateway:
        """Build a gateway with its table, dispatcher and connection manager."""
        config = config or BridgeConfig()
        pending = PendingRequestTable()
        dispatcher = Dispatcher(pending)
        connection = ConnectionManager(dispatcher, pending, config)
        return cls(connection, pending, dispatcher, config.request_timeout)

    @property
    def status(self) -> ConnectionStatus:
        return self.connection.status

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    async def start(self, port: int | None = None) -> None:
        """Start listening for the editor (raises BindError on failure)."""
        await self.connection.start(port)

    async def stop(self) -> None:
        """Shut down; every outstanding request resolves with NOT_CONNECTED."""
        await self.connection.stop()
        await self.dispatcher.drain()

    def on_event(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to unsolicited editor events. Returns an unsubscribe function."""
        return self.dispatcher.on_event(callback)

    async def send(self, request: Request | dict[str, Any]) -> Response:
        """Send a command to the editor and wait for its response.

        Args:
            request: A Request, or a mapping with at least a ``type`` key

        Returns:
            The editor's Response, or a synthetic failure
        """
        if not self.connection.is_connected:
            return Response.not_connected()

        correlation_id = generate_correlation_id()
        future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()

        def on_resolve(response: Response) -> None:
            # The caller may have been cancelled while waiting
            if not future.done():
                future.set_result(response)

        self.pending.register(correlation_id, on_resolve, self.request_timeout)

        try:
            frame = Request.coerce(request).stamped(correlation_id).to_json()
            await self.connection.send_frame(frame)
            logger.debug(f"Sent request {correlation_id}")
        except Exception as e:
            logger.error(f"Failed to send request {correlation_id}: {e}")
            # A disconnect during the write may already have swept it
            if correlation_id in self.pending:
                self.pending.resolve(
                    correlation_id,
                    Response.internal_error(correlation_id, f"Failed to send message: {e}"),
                )

        return await future

    async def __aenter__(self) -> CommandGateway:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
