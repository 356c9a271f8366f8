"""Request definitions for the editor protocol.

Requests are commands sent from the bridge to the editor. Each request
carries a ``correlationId`` (stamped by the gateway just before sending)
that the editor echoes back on its response.

Command-specific fields travel at the top level of the frame, next to the
envelope keys. Element creation commands nest their arguments under
``params``; everything else uses flat fields.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import Field

from .wire import CORRELATION_ID_KEY, MessageKind, WireMessage, generate_timestamp

# Editor canvas bounds, in canvas pixels
CANVAS_MIN = 0
CANVAS_MAX = 2000
MIN_DIMENSION = 1
FONT_SIZE_MIN = 8
FONT_SIZE_MAX = 128

TextAlign = Literal["left", "center", "right"]
FrameType = Literal["page", "modal", "flyout"]

_TEXT_ALIGNS = ("left", "center", "right")
_FRAME_TYPES = ("page", "modal", "flyout")

# snake_case keyword -> wire key for update_element
_UPDATE_FIELDS = {
    "x": "x",
    "y": "y",
    "width": "width",
    "height": "height",
    "stroke_color": "strokeColor",
    "fill_color": "fillColor",
    "content": "content",
    "font_size": "fontSize",
    "text_align": "textAlign",
    "start_x": "startX",
    "start_y": "startY",
    "end_x": "endX",
    "end_y": "endY",
    "semantic_tag": "semanticTag",
    "description": "description",
}


class CommandType(str, Enum):
    """All request types understood by the editor."""

    # Health
    PING = "ping"

    # State queries
    GET_STATE = "get_state"
    GET_ELEMENTS = "get_elements"
    GET_ELEMENT = "get_element"
    GET_FRAMES = "get_frames"
    GET_SELECTION = "get_selection"

    # Element creation
    CREATE_RECTANGLE = "create_rectangle"
    CREATE_ELLIPSE = "create_ellipse"
    CREATE_TEXT = "create_text"
    CREATE_ARROW = "create_arrow"
    CREATE_LINE = "create_line"

    # Element modification
    UPDATE_ELEMENT = "update_element"
    DELETE_ELEMENTS = "delete_elements"
    DELETE_SELECTED = "delete_selected"

    # Selection
    SELECT_ELEMENTS = "select_elements"
    CLEAR_SELECTION = "clear_selection"

    # Components
    CREATE_COMPONENT = "create_component"
    LIST_COMPONENTS = "list_components"

    # Frames
    LIST_FRAMES = "list_frames"
    SWITCH_FRAME = "switch_frame"
    CREATE_FRAME = "create_frame"


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _check_coordinate(name: str, value: float) -> None:
    if not CANVAS_MIN <= value <= CANVAS_MAX:
        raise ValueError(f"{name} must be between {CANVAS_MIN} and {CANVAS_MAX}, got {value}")


def _check_dimension(name: str, value: float) -> None:
    if value < MIN_DIMENSION:
        raise ValueError(f"{name} must be at least {MIN_DIMENSION}, got {value}")


def _check_id(name: str, value: str) -> None:
    if not value:
        raise ValueError(f"{name} must be a non-empty string")


class Request(WireMessage):
    """A command from the bridge to the editor.

    Example (as sent on the wire):
        {
            "type": "create_rectangle",
            "correlationId": "req_1718000000000_9f2c01ab",
            "timestamp": "2024-06-10T06:13:20.000000+00:00",
            "kind": "request",
            "params": {"x": 10, "y": 10, "width": 50, "height": 30}
        }
    """

    correlation_id: str | None = Field(default=None, alias=CORRELATION_ID_KEY)
    kind: MessageKind = MessageKind.REQUEST

    def stamped(self, correlation_id: str) -> Request:
        """Return a copy carrying a correlation id and a fresh timestamp."""
        return self.model_copy(
            update={"correlation_id": correlation_id, "timestamp": generate_timestamp()}
        )

    def get_field(self, key: str, default: Any = None) -> Any:
        """Get a command-specific field with optional default."""
        return self.extra_fields().get(key, default)

    @classmethod
    def create(cls, command_type: str | CommandType, **fields: Any) -> Request:
        """Factory method for creating requests.

        Keyword arguments become top-level wire fields; ``None`` values are
        omitted.
        """
        type_value = command_type.value if isinstance(command_type, CommandType) else command_type
        return cls(type=type_value, **_drop_none(fields))

    @classmethod
    def coerce(cls, request: Request | dict[str, Any]) -> Request:
        """Accept a Request or a plain mapping with a ``type`` key."""
        if isinstance(request, Request):
            return request
        return cls.model_validate(request)

    # =========================================================================
    # State queries
    # =========================================================================

    @classmethod
    def ping(cls) -> Request:
        """Create an application-level ping request."""
        return cls.create(CommandType.PING)

    @classmethod
    def get_state(cls) -> Request:
        return cls.create(CommandType.GET_STATE)

    @classmethod
    def get_elements(cls, frame_id: str | None = None) -> Request:
        """List elements of a frame (the active frame when omitted)."""
        return cls.create(CommandType.GET_ELEMENTS, frameId=frame_id)

    @classmethod
    def get_element(cls, element_id: str) -> Request:
        _check_id("element_id", element_id)
        return cls.create(CommandType.GET_ELEMENT, elementId=element_id)

    @classmethod
    def get_frames(cls) -> Request:
        return cls.create(CommandType.GET_FRAMES)

    @classmethod
    def get_selection(cls) -> Request:
        return cls.create(CommandType.GET_SELECTION)

    # =========================================================================
    # Element creation
    # =========================================================================

    @classmethod
    def _create_box(
        cls,
        command_type: CommandType,
        x: float,
        y: float,
        width: float,
        height: float,
        stroke_color: str | None,
        fill_color: str | None,
        frame_id: str | None,
    ) -> Request:
        _check_coordinate("x", x)
        _check_coordinate("y", y)
        _check_dimension("width", width)
        _check_dimension("height", height)
        params = _drop_none(
            {
                "x": x,
                "y": y,
                "width": width,
                "height": height,
                "strokeColor": stroke_color,
                "fillColor": fill_color,
                "frameId": frame_id,
            }
        )
        return cls.create(command_type, params=params)

    @classmethod
    def create_rectangle(
        cls,
        x: float,
        y: float,
        width: float,
        height: float,
        stroke_color: str | None = None,
        fill_color: str | None = None,
        frame_id: str | None = None,
    ) -> Request:
        """Create a create_rectangle request."""
        return cls._create_box(
            CommandType.CREATE_RECTANGLE, x, y, width, height, stroke_color, fill_color, frame_id
        )

    @classmethod
    def create_ellipse(
        cls,
        x: float,
        y: float,
        width: float,
        height: float,
        stroke_color: str | None = None,
        fill_color: str | None = None,
        frame_id: str | None = None,
    ) -> Request:
        """Create a create_ellipse request."""
        return cls._create_box(
            CommandType.CREATE_ELLIPSE, x, y, width, height, stroke_color, fill_color, frame_id
        )

    @classmethod
    def create_text(
        cls,
        x: float,
        y: float,
        content: str,
        font_size: float | None = None,
        text_align: TextAlign | None = None,
        frame_id: str | None = None,
    ) -> Request:
        """Create a create_text request."""
        _check_coordinate("x", x)
        _check_coordinate("y", y)
        if not content:
            raise ValueError("content must be a non-empty string")
        if font_size is not None and not FONT_SIZE_MIN <= font_size <= FONT_SIZE_MAX:
            raise ValueError(
                f"font_size must be between {FONT_SIZE_MIN} and {FONT_SIZE_MAX}, got {font_size}"
            )
        if text_align is not None and text_align not in _TEXT_ALIGNS:
            raise ValueError(f"text_align must be one of {_TEXT_ALIGNS}, got {text_align!r}")
        params = _drop_none(
            {
                "x": x,
                "y": y,
                "content": content,
                "fontSize": font_size,
                "textAlign": text_align,
                "frameId": frame_id,
            }
        )
        return cls.create(CommandType.CREATE_TEXT, params=params)

    @classmethod
    def _create_segment(
        cls,
        command_type: CommandType,
        start_x: float,
        start_y: float,
        end_x: float,
        end_y: float,
        stroke_color: str | None,
        frame_id: str | None,
    ) -> Request:
        for name, value in (
            ("start_x", start_x),
            ("start_y", start_y),
            ("end_x", end_x),
            ("end_y", end_y),
        ):
            _check_coordinate(name, value)
        params = _drop_none(
            {
                "startX": start_x,
                "startY": start_y,
                "endX": end_x,
                "endY": end_y,
                "strokeColor": stroke_color,
                "frameId": frame_id,
            }
        )
        return cls.create(command_type, params=params)

    @classmethod
    def create_arrow(
        cls,
        start_x: float,
        start_y: float,
        end_x: float,
        end_y: float,
        stroke_color: str | None = None,
        frame_id: str | None = None,
    ) -> Request:
        return cls._create_segment(
            CommandType.CREATE_ARROW, start_x, start_y, end_x, end_y, stroke_color, frame_id
        )

    @classmethod
    def create_line(
        cls,
        start_x: float,
        start_y: float,
        end_x: float,
        end_y: float,
        stroke_color: str | None = None,
        frame_id: str | None = None,
    ) -> Request:
        return cls._create_segment(
            CommandType.CREATE_LINE, start_x, start_y, end_x, end_y, stroke_color, frame_id
        )

    # =========================================================================
    # Element modification
    # =========================================================================

    @classmethod
    def update_element(cls, element_id: str, **updates: Any) -> Request:
        """Create an update_element request.

        Updates are given as snake_case keywords (``fill_color="#fff"``) and
        sent with their wire names. ``None`` values are skipped.
        """
        _check_id("element_id", element_id)
        unknown = set(updates) - set(_UPDATE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown element update fields: {sorted(unknown)}")
        wire_updates = {
            _UPDATE_FIELDS[key]: value for key, value in updates.items() if value is not None
        }
        if not wire_updates:
            raise ValueError("update_element requires at least one update")
        return cls.create(CommandType.UPDATE_ELEMENT, elementId=element_id, updates=wire_updates)

    @classmethod
    def delete_elements(cls, element_ids: list[str]) -> Request:
        if not element_ids:
            raise ValueError("element_ids must contain at least one id")
        for element_id in element_ids:
            _check_id("element_ids", element_id)
        return cls.create(CommandType.DELETE_ELEMENTS, elementIds=list(element_ids))

    @classmethod
    def delete_selected(cls) -> Request:
        return cls.create(CommandType.DELETE_SELECTED)

    # =========================================================================
    # Selection
    # =========================================================================

    @classmethod
    def select_elements(cls, element_ids: list[str]) -> Request:
        """Select elements by id (an empty list clears the selection)."""
        for element_id in element_ids:
            _check_id("element_ids", element_id)
        return cls.create(CommandType.SELECT_ELEMENTS, elementIds=list(element_ids))

    @classmethod
    def clear_selection(cls) -> Request:
        return cls.create(CommandType.CLEAR_SELECTION)

    # =========================================================================
    # Components and frames
    # =========================================================================

    @classmethod
    def create_component(
        cls,
        template_type: str,
        x: float,
        y: float,
        frame_id: str | None = None,
    ) -> Request:
        _check_id("template_type", template_type)
        _check_coordinate("x", x)
        _check_coordinate("y", y)
        return cls.create(
            CommandType.CREATE_COMPONENT, templateType=template_type, x=x, y=y, frameId=frame_id
        )

    @classmethod
    def list_components(cls) -> Request:
        return cls.create(CommandType.LIST_COMPONENTS)

    @classmethod
    def list_frames(cls) -> Request:
        return cls.create(CommandType.LIST_FRAMES)

    @classmethod
    def switch_frame(cls, frame_id: str) -> Request:
        _check_id("frame_id", frame_id)
        return cls.create(CommandType.SWITCH_FRAME, frameId=frame_id)

    @classmethod
    def create_frame(cls, name: str, frame_type: FrameType | None = None) -> Request:
        """Create a create_frame request (the editor defaults to a page)."""
        _check_id("name", name)
        if frame_type is not None and frame_type not in _FRAME_TYPES:
            raise ValueError(f"frame_type must be one of {_FRAME_TYPES}, got {frame_type!r}")
        return cls.create(CommandType.CREATE_FRAME, name=name, frameType=frame_type)
