"""Tests for the line-delimited JSON message codec."""

import json

import pytest

from pybridge.bridge.errors import ProtocolParseError
from pybridge.bridge.protocol import (
    CallRequest,
    EventKind,
    RpcEvent,
    decode_message,
    encode_request,
)


class TestCallRequest:
    """Tests for outgoing requests."""

    def test_to_dict(self):
        """Requests carry id, method and a list of args."""
        request = CallRequest(3, "tokenize", ("some text", 2))
        assert request.to_dict() == {"id": 3, "method": "tokenize", "args": ["some text", 2]}

    def test_line_is_single_terminated_line(self):
        """Encoded requests are one line ending in a single newline."""
        line = encode_request(0, "echo", ["multi\nline"])
        assert line.endswith(b"\n")
        assert line.count(b"\n") == 1
        assert json.loads(line) == {"id": 0, "method": "echo", "args": ["multi\nline"]}

    def test_no_args(self):
        """Calls without arguments send an empty list."""
        assert json.loads(encode_request(1, "ping")) == {"id": 1, "method": "ping", "args": []}

    def test_unserializable_args_raise(self):
        """Arguments must be JSON serializable."""
        with pytest.raises(TypeError):
            encode_request(1, "f", [object()])


class TestDecodeMessage:
    """Tests for decoding incoming records."""

    def test_ready(self):
        """A ready field makes a Ready event."""
        event = decode_message('{"id": 0, "ready": true}')
        assert event.kind is EventKind.READY
        assert event.id == 0
        assert not event.is_terminal

    def test_ready_without_id(self):
        """Ready does not need an id."""
        assert decode_message('{"ready": true}') == RpcEvent.ready(0)

    def test_yield(self):
        """A yield field makes a Yield event carrying the value."""
        event = decode_message('{"id": 5, "yield": {"a": [1, 2]}}')
        assert event.kind is EventKind.YIELD
        assert event.value == {"a": [1, 2]}

    @pytest.mark.parametrize("value", [0, False, "", None, [], {}])
    def test_falsy_yield_values(self, value):
        """Presence of the field decides the variant, not its truthiness."""
        event = decode_message(json.dumps({"id": 2, "yield": value}))
        assert event.kind is EventKind.YIELD
        assert event.value == value

    def test_error(self):
        """An error field makes a terminal Error event."""
        event = decode_message('{"id": 9, "error": "Traceback...\\nValueError: bad"}')
        assert event.kind is EventKind.ERROR
        assert event.error == "Traceback...\nValueError: bad"
        assert event.is_terminal

    def test_error_as_list_is_joined(self):
        """Tracebacks sent as format_exception() lists are joined."""
        event = decode_message('{"id": 9, "error": ["Traceback\\n", "KeyError: 1\\n"]}')
        assert event.error == "Traceback\nKeyError: 1\n"

    def test_completion(self):
        """An object with only an id is a Completion."""
        event = decode_message('{"id": 4}')
        assert event.kind is EventKind.COMPLETION
        assert event.is_terminal

    def test_priority_ready_over_yield(self):
        """ready wins over yield, yield over error."""
        assert decode_message('{"id": 1, "ready": true, "yield": 1}').kind is EventKind.READY
        assert decode_message('{"id": 1, "yield": 1, "error": "x"}').kind is EventKind.YIELD

    def test_invalid_json(self):
        """Malformed JSON is reported as a ProtocolParseError."""
        with pytest.raises(ProtocolParseError) as exc_info:
            decode_message("{not json")
        assert exc_info.value.line == "{not json"

    def test_non_object(self):
        """Only JSON objects are messages."""
        with pytest.raises(ProtocolParseError):
            decode_message("[1, 2]")

    def test_deeply_nested_json(self):
        """Nesting too deep for the json scanner is a ProtocolParseError."""
        record = '{"id": 5, "yield": ' + "[" * 100000
        with pytest.raises(ProtocolParseError):
            decode_message(record)

    @pytest.mark.parametrize("record", ['{"yield": 1}', '{"id": "1"}', '{"id": true}', '{"id": 1.5}'])
    def test_invalid_id(self, record):
        """Call events need an integer id."""
        with pytest.raises(ProtocolParseError):
            decode_message(record)
