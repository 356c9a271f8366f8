"""Envelope shared by every message on the editor socket.

All frames are JSON objects with camelCase keys. Three shapes travel on
the wire:

- Request (bridge -> editor): ``type``, ``correlationId``, ``timestamp``
  plus command-specific fields at the top level.
- Response (editor -> bridge): ``type``, ``correlationId``, ``timestamp``,
  ``success`` and either ``data`` or ``error``.
- Event (editor -> bridge, unsolicited): ``type``, ``timestamp``, ``data``.

Editors in the field do not tag their frames, so an inbound frame is an
Event exactly when it carries neither ``correlationId`` nor ``success``.
Frames the bridge emits always carry an explicit ``kind`` tag.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

CORRELATION_ID_KEY = "correlationId"
SUCCESS_KEY = "success"
KIND_KEY = "kind"


class MessageKind(str, Enum):
    """Discriminator for the three envelope shapes."""

    REQUEST = "request"
    RESPONSE = "response"
    EVENT = "event"


def generate_correlation_id() -> str:
    """Create a request id: millisecond clock plus a random suffix."""
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def generate_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(UTC).isoformat()


def is_event(message: Mapping[str, Any]) -> bool:
    """Check whether a decoded frame is an unsolicited event."""
    return CORRELATION_ID_KEY not in message and SUCCESS_KEY not in message


def classify_frame(message: Mapping[str, Any]) -> MessageKind:
    """Classify a decoded inbound frame as a response or an event."""
    return MessageKind.EVENT if is_event(message) else MessageKind.RESPONSE


class WireMessage(BaseModel):
    """Base for all protocol messages.

    Fields are snake_case in Python and camelCase on the wire. Unknown keys
    are preserved so command-specific fields survive a round trip.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    timestamp: str = Field(default_factory=generate_timestamp)

    def to_wire(self) -> dict[str, Any]:
        """Dump to a JSON-ready dict using wire key names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        """Serialize to a single-line JSON frame."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def extra_fields(self) -> dict[str, Any]:
        """Fields not declared on the model (command payload, custom keys)."""
        return dict(self.model_extra or {})
