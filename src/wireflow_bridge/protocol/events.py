"""Response and event definitions for the editor protocol.

Frames coming back from the editor are either:
- Responses: correlated to a request (carry ``correlationId`` and ``success``)
- Events: unsolicited notifications (carry neither)

Error codes on failed responses are either produced locally by the bridge
(``NOT_CONNECTED``, ``TIMEOUT``, ``INTERNAL_ERROR``) or defined by the
editor's command handling and passed through untouched.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import MalformedFrameError
from .wire import (
    CORRELATION_ID_KEY,
    KIND_KEY,
    MessageKind,
    WireMessage,
    classify_frame,
)

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = "WireFlow is not connected. Please open the app in a browser."


class ErrorCode(str, Enum):
    """Known error codes."""

    # Editor-side (passed through verbatim)
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN_TYPE = "UNKNOWN_TYPE"
    ELEMENT_NOT_FOUND = "ELEMENT_NOT_FOUND"
    FRAME_NOT_FOUND = "FRAME_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CANNOT_DELETE_LAST_FRAME = "CANNOT_DELETE_LAST_FRAME"
    COMPONENT_NOT_FOUND = "COMPONENT_NOT_FOUND"
    INVALID_COORDINATES = "INVALID_COORDINATES"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    INVALID_DIMENSIONS = "INVALID_DIMENSIONS"

    # Bridge-side
    NOT_CONNECTED = "NOT_CONNECTED"
    TIMEOUT = "TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"


class EventType(str, Enum):
    """Unsolicited event types emitted by the editor."""

    CLIENT_CONNECTED = "client_connected"
    CLIENT_DISCONNECTED = "client_disconnected"
    STATE_CHANGED = "state_changed"


class ErrorInfo(BaseModel):
    """Error payload of a failed response."""

    code: str
    message: str = ""
    details: dict[str, Any] | None = None


class Response(WireMessage):
    """A reply from the editor to one request.

    Example (success):
        {
            "type": "element_created",
            "correlationId": "req_1718000000000_9f2c01ab",
            "timestamp": "2024-06-10T06:13:20.120Z",
            "success": true,
            "data": {"elementId": "el_123"}
        }

    Example (failure):
        {
            "type": "error",
            "correlationId": "req_1718000000000_9f2c01ab",
            "timestamp": "2024-06-10T06:13:20.120Z",
            "success": false,
            "error": {"code": "ELEMENT_NOT_FOUND", "message": "No element el_9"}
        }
    """

    # Replies without a type still resolve their request
    type: str = "result"
    correlation_id: str = Field(default="", alias=CORRELATION_ID_KEY)
    success: bool = False
    data: Any = None
    error: ErrorInfo | None = None
    kind: MessageKind = MessageKind.RESPONSE

    @field_validator("error", mode="before")
    @classmethod
    def _coerce_error(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"code": ErrorCode.INVALID_RESPONSE.value, "message": value}
        return value

    @property
    def error_code(self) -> str | None:
        """Error code of a failed response, None on success."""
        return self.error.code if self.error else None

    def is_error(self) -> bool:
        return not self.success

    @classmethod
    def ok(
        cls,
        correlation_id: str,
        data: Any = None,
        response_type: str = "result",
    ) -> Response:
        """Create a successful response."""
        return cls(type=response_type, correlation_id=correlation_id, success=True, data=data)

    @classmethod
    def failure(
        cls,
        correlation_id: str,
        code: str | ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> Response:
        """Create a failed response."""
        return cls(
            type="error",
            correlation_id=correlation_id,
            success=False,
            error=ErrorInfo(
                code=code.value if isinstance(code, ErrorCode) else code,
                message=message,
                details=details,
            ),
        )

    @classmethod
    def not_connected(
        cls, correlation_id: str = "", message: str = NOT_CONNECTED_MESSAGE
    ) -> Response:
        return cls.failure(correlation_id, ErrorCode.NOT_CONNECTED, message)

    @classmethod
    def timeout(cls, correlation_id: str, timeout: float) -> Response:
        """Create a timeout failure; ``timeout`` is in seconds."""
        return cls.failure(
            correlation_id,
            ErrorCode.TIMEOUT,
            f"Request timed out after {round(timeout * 1000)}ms",
        )

    @classmethod
    def internal_error(cls, correlation_id: str, message: str) -> Response:
        return cls.failure(correlation_id, ErrorCode.INTERNAL_ERROR, message)


class Event(WireMessage):
    """An unsolicited notification from the editor.

    Example:
        {
            "type": "state_changed",
            "timestamp": "2024-06-10T06:13:21.000Z",
            "data": {"changeType": "element_added", "affectedIds": ["el_123"]}
        }
    """

    data: Any = None
    kind: MessageKind = MessageKind.EVENT


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    """Decode one text frame into a JSON object.

    Raises:
        MalformedFrameError: If the frame is not a UTF-8 JSON object.
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        message = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedFrameError(f"Invalid JSON frame: {e}") from e

    if not isinstance(message, dict):
        raise MalformedFrameError(f"Frame is not a JSON object: {type(message).__name__}")
    return message


def parse_message(message: dict[str, Any]) -> Response | Event:
    """Build a Response or an Event from a decoded frame.

    Classification is structural: a frame without ``correlationId`` and
    without ``success`` is an Event, anything else is a Response. A
    ``kind`` tag that contradicts the structure is logged and ignored.

    A reply that fails validation but carries a string ``correlationId``
    becomes an ``INVALID_RESPONSE`` failure for that id, so the waiting
    request completes instead of timing out.

    Raises:
        MalformedFrameError: If the frame does not validate and cannot be
            tied to a request.
    """
    kind = classify_frame(message)
    fields = dict(message)
    declared = fields.pop(KIND_KEY, None)
    if declared is not None and declared != kind.value:
        logger.warning(f"Frame declares kind={declared!r} but is shaped as {kind.value}")

    model: type[Response] | type[Event] = Event if kind is MessageKind.EVENT else Response
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        correlation_id = fields.get(CORRELATION_ID_KEY)
        if kind is MessageKind.RESPONSE and isinstance(correlation_id, str) and correlation_id:
            logger.warning(f"Invalid response frame for {correlation_id}: {e}")
            return Response.failure(
                correlation_id,
                ErrorCode.INVALID_RESPONSE,
                f"Invalid response from editor: {e.error_count()} validation error(s)",
                details={"frame": message},
            )
        raise MalformedFrameError(f"Invalid {kind.value} frame: {e}") from e


def parse_frame(raw: str | bytes) -> Response | Event:
    """Decode and classify one inbound frame.

    Raises:
        MalformedFrameError: If the frame cannot be decoded or validated.
    """
    return parse_message(decode_frame(raw))
