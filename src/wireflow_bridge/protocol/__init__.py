"""Editor wire protocol.

Defines the request/response/event envelope exchanged with the editor over
its WebSocket.

Key concepts:
- Requests: bridge -> editor commands, each with a correlation id
- Responses: editor -> bridge replies echoing that correlation id
- Events: editor -> bridge notifications with no correlation id

A frame is an Event when it has neither ``correlationId`` nor ``success``.
"""

from .commands import CommandType, Request
from .events import ErrorCode, ErrorInfo, Event, EventType, Response, parse_frame
from .wire import MessageKind, classify_frame, generate_correlation_id, is_event

__all__ = [
    "CommandType",
    "ErrorCode",
    "ErrorInfo",
    "Event",
    "EventType",
    "MessageKind",
    "Request",
    "Response",
    "classify_frame",
    "generate_correlation_id",
    "is_event",
    "parse_frame",
]
