"""Unit tests for wire message types and edit envelope composition."""

import json
from dataclasses import dataclass
from pathlib import Path

import pytest
from pydantic import BaseModel, ValidationError

from xi_client.errors import SerializationError
from xi_client.protocol.messages import (
    RpcNotification,
    RpcRequest,
    RpcResponse,
    compose_edit_params,
    method_name,
    to_wire_value,
)
from xi_client.structs import EditMethod, GestureType, ModifySelection


class Position(BaseModel):
    line: int
    col: int


@dataclass
class Span:
    start: int
    end: int


class TestNotificationAndRequest:
    """Test outbound message serialization."""

    def test_notification_has_no_id(self):
        """Notifications serialize to method and params only."""
        note = RpcNotification(method="close_view", params={"view_id": "view-id-1"})

        assert json.loads(note.model_dump_json()) == {
            "method": "close_view",
            "params": {"view_id": "view-id-1"},
        }

    def test_request_carries_id(self):
        """Requests serialize with their id."""
        req = RpcRequest(id=4, method="new_view", params={})

        assert json.loads(req.model_dump_json()) == {"id": 4, "method": "new_view", "params": {}}

    def test_unicode_params_survive(self):
        """Non-ASCII text is preserved through JSON."""
        note = RpcNotification(method="edit", params={"chars": "héllo 世界 🌍"})

        restored = RpcNotification.model_validate_json(note.model_dump_json())
        assert restored.params["chars"] == "héllo 世界 🌍"


class TestRpcResponse:
    """Test reply parsing and outcome detection."""

    def test_result_reply(self):
        """A reply with result is a success."""
        response = RpcResponse.model_validate({"id": 1, "result": "view-id-1"})

        assert not response.is_error
        assert response.result == "view-id-1"

    def test_null_result_is_still_success(self):
        """Presence of result, not its value, decides the outcome."""
        response = RpcResponse.model_validate({"id": 1, "result": None})

        assert not response.is_error
        assert response.result is None

    def test_error_reply(self):
        """A reply with error is an application error."""
        response = RpcResponse.model_validate({"id": 1, "error": {"code": 3, "message": "no"}})

        assert response.is_error
        assert response.error == {"code": 3, "message": "no"}

    def test_null_error_is_still_error(self):
        """An explicit null error is still an error reply."""
        response = RpcResponse.model_validate({"id": 1, "error": None})

        assert response.is_error

    def test_reply_with_both_outcomes_rejected(self):
        """A reply cannot carry result and error at once."""
        with pytest.raises(ValidationError, match="exactly one"):
            RpcResponse.model_validate({"id": 1, "result": 1, "error": 2})

    def test_reply_with_no_outcome_rejected(self):
        """A reply must carry result or error."""
        with pytest.raises(ValidationError, match="exactly one"):
            RpcResponse.model_validate({"id": 1})

    def test_to_json_only_includes_present_outcome(self):
        """Serialized replies omit the absent outcome."""
        assert json.loads(RpcResponse.success(2, None).to_json()) == {"id": 2, "result": None}
        assert json.loads(RpcResponse.failure(2, "bad").to_json()) == {"id": 2, "error": "bad"}


class TestToWireValue:
    """Test conversion of typed values to wire values."""

    def test_json_values_pass_through(self):
        """Plain JSON values are unchanged."""
        value = {"a": [1, 2.5, "x", None, True]}

        assert to_wire_value(value) == value

    def test_enums_become_values(self):
        """String enums serialize to their value."""
        assert to_wire_value(ModifySelection.ADD_REMOVING_CURRENT) == "add_removing_current"

    def test_models_and_dataclasses(self):
        """Pydantic models and dataclasses serialize to objects."""
        assert to_wire_value(Position(line=1, col=2)) == {"line": 1, "col": 2}
        assert to_wire_value(Span(start=0, end=4)) == {"start": 0, "end": 4}

    def test_tuples_become_lists(self):
        """Tuples serialize as JSON arrays."""
        assert to_wire_value((21, 80)) == [21, 80]

    def test_paths_become_strings(self):
        """Paths serialize as strings."""
        assert to_wire_value(Path("/tmp/a.txt")) == "/tmp/a.txt"

    def test_unserializable_raises(self):
        """Values with no wire form raise SerializationError."""
        with pytest.raises(SerializationError, match="object"):
            to_wire_value(object())


class TestComposeEditParams:
    """Test the "edit" envelope."""

    def test_without_params_uses_empty_list(self):
        """Missing params become [], never null and never omitted."""
        envelope = compose_edit_params("view-id-1", "undo")

        assert envelope == {"method": "undo", "view_id": "view-id-1", "params": []}
        assert json.loads(json.dumps(envelope))["params"] == []

    def test_with_sequence_params(self):
        """Sequence params are nested as given."""
        envelope = compose_edit_params("view-id-1", "scroll", [21, 80])

        assert envelope == {"method": "scroll", "view_id": "view-id-1", "params": [21, 80]}

    def test_with_object_params(self):
        """Object params are nested as given."""
        envelope = compose_edit_params("view-id-1", "insert", {"chars": "a"})

        assert envelope["params"] == {"chars": "a"}

    def test_typed_params_are_serialized(self):
        """Typed params are converted to wire values."""
        envelope = compose_edit_params(
            "view-id-1",
            EditMethod.GESTURE,
            {"line": 1, "col": 2, "ty": GestureType.WORD_SELECT},
        )

        assert envelope["method"] == "gesture"
        assert envelope["params"] == {"line": 1, "col": 2, "ty": "word_select"}

    def test_model_params(self):
        """A pydantic model can be passed directly as params."""
        envelope = compose_edit_params("view-id-1", "goto", Position(line=3, col=0))

        assert envelope["params"] == {"line": 3, "col": 0}

    def test_empty_dict_is_not_replaced(self):
        """Only a missing value becomes []; an empty object stays an object."""
        envelope = compose_edit_params("view-id-1", "find", {})

        assert envelope["params"] == {}

    def test_unserializable_params_raise(self):
        """Unserializable params raise SerializationError."""
        with pytest.raises(SerializationError):
            compose_edit_params("view-id-1", "insert", {"chars": object()})

    def test_method_name_accepts_enum_or_string(self):
        """Method names may be given as enum members or strings."""
        assert method_name(EditMethod.MOVE_LEFT) == "move_left"
        assert method_name("custom_method") == "custom_method"
