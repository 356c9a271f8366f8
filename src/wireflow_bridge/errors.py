"""Exceptions raised inside the bridge.

Callers of ``CommandGateway.send`` never see these: every failure on that
path is converted into a failed ``Response``. They surface only at the
component seams (startup, direct ``send_frame`` use, misuse of the pending
table).
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class BindError(BridgeError):
    """The WebSocket listener could not bind its host/port."""

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"Cannot listen on {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason


class NotConnectedError(BridgeError, ConnectionError):
    """No editor peer is attached."""


class DuplicateRequestError(BridgeError, ValueError):
    """A correlation id was registered twice."""


class MalformedFrameError(BridgeError, ValueError):
    """An inbound frame could not be parsed into a protocol message."""
