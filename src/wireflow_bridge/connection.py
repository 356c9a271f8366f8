"""Connection manager for the editor WebSocket.

The bridge listens; the editor (a browser tab) connects. Exactly one editor
may be attached at a time. Later connection attempts are closed with a
policy-violation code while the first one stays untouched.

Lifecycle:
    start() -> listening -> editor connects -> connected
            -> editor leaves -> disconnected (pending requests swept)
    stop()  -> socket closed, pending requests swept, listener closed
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.frames import CloseCode
from websockets.protocol import State

from .config import BridgeConfig
from .dispatcher import Dispatcher
from .errors import BindError, NotConnectedError
from .pending import PendingRequestTable
from .protocol.events import ErrorCode

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    """Editor connection state."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class ConnectionManager:
    """Owns the listener and the single active editor socket.

    Only this class writes to or closes the socket. Inbound frames are
    passed to the dispatcher; losing the socket sweeps the pending table.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        pending: PendingRequestTable,
        config: BridgeConfig | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self._dispatcher = dispatcher
        self._pending = pending
        self._server: Server | None = None
        self._websocket: ServerConnection | None = None
        self._ping_task: asyncio.Task[None] | None = None
        self._status = ConnectionStatus.DISCONNECTED
        self._stopping = False

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        """Check if an editor is attached and its socket is open."""
        return (
            self._status == ConnectionStatus.CONNECTED
            and self._websocket is not None
            and self._websocket.state is State.OPEN
        )

    @property
    def is_listening(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int | None:
        """Port actually bound (differs from the configured one when that is 0)."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    @property
    def peer_address(self) -> str | None:
        if self._websocket is None:
            return None
        address = self._websocket.remote_address
        return f"{address[0]}:{address[1]}" if address else None

    async def start(self, port: int | None = None) -> None:
        """Start listening for the editor.

        Args:
            port: Overrides the configured port

        Raises:
            BindError: If the host/port cannot be bound
            RuntimeError: If already listening
        """
        if self._server is not None:
            raise RuntimeError("Connection manager already started")

        self._stopping = False
        host = self.config.host
        port = self.config.port if port is None else port
        try:
            self._server = await serve(
                self._handle_connection,
                host,
                port,
                # Liveness is driven by our own ping loop
                ping_interval=None,
            )
        except OSError as e:
            raise BindError(host, port, e.strerror or str(e)) from e

        logger.info(f"WebSocket server listening on {host}:{self.port}")

    async def stop(self) -> None:
        """Close the editor socket, fail pending requests, close the listener.

        Safe to call more than once.
        """
        self._stopping = True
        websocket = self._websocket
        server = self._server
        self._websocket = None
        self._server = None
        self._status = ConnectionStatus.DISCONNECTED

        if websocket is not None:
            await websocket.close(CloseCode.NORMAL_CLOSURE, "Server shutting down")

        await self._cancel_ping()
        self._pending.sweep(ErrorCode.NOT_CONNECTED, "Server shutting down")

        if server is not None:
            server.close()
            await server.wait_closed()
            logger.info("WebSocket server stopped")

    async def send_frame(self, frame: str) -> None:
        """Write one text frame to the editor.

        Raises:
            NotConnectedError: If no editor is attached
            ConnectionClosed: If the socket closes during the write
        """
        websocket = self._websocket
        if websocket is None:
            raise NotConnectedError("No editor connected")
        await websocket.send(frame)

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        if self._stopping:
            await websocket.close(CloseCode.GOING_AWAY, "Server shutting down")
            return

        if self._websocket is not None:
            logger.warning("New client attempted to connect, rejecting (already have a client)")
            await websocket.close(CloseCode.POLICY_VIOLATION, "Only one client allowed")
            return

        self._websocket = websocket
        self._status = ConnectionStatus.CONNECTED
        self._ping_task = asyncio.create_task(self._ping_loop(websocket))
        logger.info(f"Client connected from {self.peer_address}")

        try:
            async for frame in websocket:
                self._dispatcher.dispatch(frame)
        except ConnectionClosed as e:
            logger.warning(f"Client connection lost: {e}")
        finally:
            await self._handle_disconnect(websocket)

    async def _handle_disconnect(self, websocket: ServerConnection) -> None:
        # stop() may already have detached this socket
        if self._websocket is not websocket:
            return

        self._websocket = None
        self._status = ConnectionStatus.DISCONNECTED
        logger.info(f"Client disconnected: {websocket.close_code} {websocket.close_reason or ''}")

        await self._cancel_ping()
        self._pending.sweep(ErrorCode.NOT_CONNECTED, "Client disconnected")

    async def _ping_loop(self, websocket: ServerConnection) -> None:
        while websocket.state is State.OPEN:
            await asyncio.sleep(self.config.ping_interval)
            try:
                await websocket.ping()
            except ConnectionClosed:
                return
            logger.debug("Sent liveness ping")

    async def _cancel_ping(self) -> None:
        task = self._ping_task
        self._ping_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
