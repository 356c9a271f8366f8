"""Caller-facing transports.

The editor side is always a WebSocket (see ``wireflow_bridge.connection``).
This package holds the ways a local agent process reaches the gateway:

- stdio - newline-delimited JSON over stdin/stdout, for subprocess use
"""

from .stdio_adapter import StdioProtocolAdapter

__all__ = ["StdioProtocolAdapter"]
