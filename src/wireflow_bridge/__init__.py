"""WireFlow Bridge.

Lets an automation agent drive the WireFlow wireframe editor. The editor
connects to the bridge over a WebSocket; the bridge sends it commands and
correlates each reply with the request that caused it.

Usage:
    from wireflow_bridge import CommandGateway, Request

    async with CommandGateway.from_config() as gateway:
        response = await gateway.send(Request.get_state())
"""

from .config import BridgeConfig
from .connection import ConnectionManager, ConnectionStatus
from .dispatcher import Dispatcher
from .errors import (
    BindError,
    BridgeError,
    DuplicateRequestError,
    MalformedFrameError,
    NotConnectedError,
)
from .gateway import CommandGateway
from .pending import PendingRequestTable
from .protocol import CommandType, ErrorCode, Event, EventType, Request, Response

__version__ = "0.1.0"

__all__ = [
    "BindError",
    "BridgeConfig",
    "BridgeError",
    "CommandGateway",
    "CommandType",
    "ConnectionManager",
    "ConnectionStatus",
    "Dispatcher",
    "DuplicateRequestError",
    "ErrorCode",
    "Event",
    "EventType",
    "MalformedFrameError",
    "NotConnectedError",
    "PendingRequestTable",
    "Request",
    "Response",
]
