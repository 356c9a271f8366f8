"""Tests for the wire envelope, responses and events."""

from __future__ import annotations

import json
import re

import pytest

from wireflow_bridge.errors import MalformedFrameError
from wireflow_bridge.protocol import (
    ErrorCode,
    Event,
    MessageKind,
    Response,
    classify_frame,
    generate_correlation_id,
    is_event,
    parse_frame,
)

# =============================================================================
# Classification
# =============================================================================


class TestClassification:
    """An inbound frame is an Event iff it has no correlationId and no success."""

    def test_frame_without_correlation_or_success_is_event(self) -> None:
        assert is_event({"type": "state_changed", "data": {}})
        assert classify_frame({"type": "state_changed"}) == MessageKind.EVENT

    def test_correlation_id_makes_response(self) -> None:
        assert not is_event({"type": "x", "correlationId": "req_1"})
        assert classify_frame({"type": "x", "correlationId": "req_1"}) == MessageKind.RESPONSE

    def test_success_alone_makes_response(self) -> None:
        assert classify_frame({"type": "x", "success": False}) == MessageKind.RESPONSE


class TestCorrelationIds:
    def test_format(self) -> None:
        assert re.fullmatch(r"req_\d+_[0-9a-f]{8}", generate_correlation_id())

    def test_unique(self) -> None:
        ids = {generate_correlation_id() for _ in range(1000)}
        assert len(ids) == 1000


# =============================================================================
# Response
# =============================================================================


class TestResponse:
    def test_ok_serializes_camel_case(self) -> None:
        data = json.loads(Response.ok("req_1", {"elementId": "el_1"}, "element_created").to_json())

        assert data["correlationId"] == "req_1"
        assert data["success"] is True
        assert data["data"] == {"elementId": "el_1"}
        assert data["kind"] == "response"
        assert "error" not in data

    def test_failure_carries_code(self) -> None:
        response = Response.failure("req_1", ErrorCode.ELEMENT_NOT_FOUND, "No element el_9")

        assert response.is_error()
        assert response.type == "error"
        assert response.error_code == "ELEMENT_NOT_FOUND"
        assert response.error is not None
        assert response.error.message == "No element el_9"

    def test_timeout_message_in_milliseconds(self) -> None:
        response = Response.timeout("req_1", 10.0)

        assert response.error_code == "TIMEOUT"
        assert response.error is not None
        assert response.error.message == "Request timed out after 10000ms"

    def test_not_connected_defaults(self) -> None:
        response = Response.not_connected()

        assert response.correlation_id == ""
        assert response.error_code == "NOT_CONNECTED"
        assert response.error is not None
        assert "not connected" in response.error.message

    def test_unknown_editor_code_passes_through(self) -> None:
        response = Response.failure("req_1", "SOMETHING_NEW", "custom")

        assert response.error_code == "SOMETHING_NEW"


# =============================================================================
# Frame parsing
# =============================================================================


class TestParseFrame:
    def test_response_frame(self) -> None:
        frame = json.dumps(
            {
                "type": "element_created",
                "correlationId": "req_1",
                "timestamp": "2024-06-10T06:13:20.120Z",
                "success": True,
                "data": {"elementId": "el_1"},
            }
        )
        message = parse_frame(frame)

        assert isinstance(message, Response)
        assert message.correlation_id == "req_1"
        assert message.data == {"elementId": "el_1"}

    def test_error_response_frame(self) -> None:
        frame = json.dumps(
            {
                "type": "error",
                "correlationId": "req_2",
                "success": False,
                "error": {"code": "FRAME_NOT_FOUND", "message": "no frame"},
            }
        )
        message = parse_frame(frame)

        assert isinstance(message, Response)
        assert message.error_code == "FRAME_NOT_FOUND"

    def test_event_frame(self) -> None:
        frame = json.dumps({"type": "state_changed", "data": {"changeType": "selection"}})
        message = parse_frame(frame)

        assert isinstance(message, Event)
        assert message.data == {"changeType": "selection"}

    def test_bytes_frame(self) -> None:
        message = parse_frame(b'{"type": "client_connected"}')

        assert isinstance(message, Event)

    def test_unknown_fields_preserved(self) -> None:
        message = parse_frame('{"type": "state_changed", "data": {}, "revision": 4}')

        assert message.extra_fields() == {"revision": 4}

    def test_conflicting_kind_uses_structure(self, caplog: pytest.LogCaptureFixture) -> None:
        message = parse_frame('{"type": "x", "correlationId": "req_1", "kind": "event"}')

        assert isinstance(message, Response)
        assert "declares kind" in caplog.text

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '"just a string"',
            '{"correlationId": 7}',
            '{"data": {}}',
            b"\xff\xfe",
        ],
    )
    def test_malformed_frames_raise(self, raw: str | bytes) -> None:
        with pytest.raises(MalformedFrameError):
            parse_frame(raw)


class TestLenientParsing:
    """Frames from the editor are delivered even when loosely shaped."""

    @pytest.mark.parametrize("data", [None, ["el_1"], "selection", 3])
    def test_event_with_non_object_data(self, data: object) -> None:
        message = parse_frame(json.dumps({"type": "selection_changed", "data": data}))

        assert isinstance(message, Event)
        assert message.data == data

    def test_event_without_data(self) -> None:
        message = parse_frame('{"type": "client_connected"}')

        assert isinstance(message, Event)
        assert message.data is None

    def test_reply_with_string_error(self) -> None:
        message = parse_frame(
            json.dumps(
                {
                    "type": "error",
                    "correlationId": "req_1",
                    "success": False,
                    "error": "Element not found",
                }
            )
        )

        assert isinstance(message, Response)
        assert message.correlation_id == "req_1"
        assert message.error_code == ErrorCode.INVALID_RESPONSE.value
        assert message.error is not None
        assert message.error.message == "Element not found"

    def test_reply_without_type(self) -> None:
        message = parse_frame('{"correlationId": "req_1", "success": true, "data": {"n": 1}}')

        assert isinstance(message, Response)
        assert message.type == "result"
        assert message.success
        assert message.data == {"n": 1}

    def test_unreadable_reply_still_tied_to_request(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        message = parse_frame('{"type": "state", "correlationId": "req_1", "error": 42}')

        assert isinstance(message, Response)
        assert message.correlation_id == "req_1"
        assert not message.success
        assert message.error_code == "INVALID_RESPONSE"
        assert message.error is not None
        assert message.error.details == {
            "frame": {"type": "state", "correlationId": "req_1", "error": 42}
        }
        assert "Invalid response frame for req_1" in caplog.text

    @pytest.mark.parametrize("code", ["INVALID_COORDINATES", "OUT_OF_BOUNDS", "INVALID_DIMENSIONS"])
    def test_editor_validation_codes_are_known(self, code: str) -> None:
        assert ErrorCode(code).value == code
