"""Message definitions for the core's line-delimited JSON protocol.

Every line exchanged with the core is one JSON object:

    Notification:  {"method": "close_view", "params": {"view_id": "view-id-1"}}
    Request:       {"id": 3, "method": "new_view", "params": {}}
    Reply:         {"id": 3, "result": "view-id-1"}
                   {"id": 3, "error": {"code": 1, "message": "..."}}

Per-view commands ride inside an "edit" call whose params are an
EditParams envelope:

    {"method": "edit",
     "params": {"method": "scroll", "view_id": "view-id-1", "params": [21, 80]}}
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, model_validator
from pydantic_core import PydanticSerializationError, to_jsonable_python

from ..errors import SerializationError


def to_wire_value(value: Any) -> Any:
    """Convert a value to its JSON-compatible wire representation.

    Accepts anything pydantic can serialize: JSON values, models,
    dataclasses, enums, tuples, paths...

    Raises:
        SerializationError: If the value cannot be represented on the wire
    """
    try:
        return to_jsonable_python(value)
    except (PydanticSerializationError, ValueError) as e:
        raise SerializationError(f"Cannot serialize {type(value).__name__}: {e}") from e


def method_name(method: str | Enum) -> str:
    """Plain string for a method given as a string or a string enum."""
    return method.value if isinstance(method, Enum) else method


class RpcNotification(BaseModel):
    """A one-way message; no reply is expected."""

    method: str
    params: Any = None


class RpcRequest(BaseModel):
    """A message expecting a reply carrying the same id."""

    id: int | str
    method: str
    params: Any = None


class RpcResponse(BaseModel):
    """A reply to a request.

    Exactly one of `result` or `error` is present. Presence matters more
    than value: `{"id": 1, "result": null}` is a successful reply.
    """

    id: int | str
    result: Any = None
    error: Any = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> RpcResponse:
        has_result = "result" in self.model_fields_set
        has_error = "error" in self.model_fields_set
        if has_result == has_error:
            raise ValueError("Reply must carry exactly one of 'result' or 'error'")
        return self

    @property
    def is_error(self) -> bool:
        """Check if the core rejected the request."""
        return "error" in self.model_fields_set

    @classmethod
    def success(cls, request_id: int | str, result: Any) -> RpcResponse:
        """Create a successful reply."""
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: int | str, error: Any) -> RpcResponse:
        """Create an error reply."""
        return cls(id=request_id, error=error)

    def to_json(self) -> str:
        """Serialize with only the outcome that is present."""
        return self.model_dump_json(exclude_unset=True)


class EditParams(BaseModel):
    """Params of an outer "edit" call."""

    method: str
    view_id: Any
    params: Any


def compose_edit_params(
    view_id: Any,
    method: str | Enum,
    params: Any | None = None,
) -> dict[str, Any]:
    """Build the envelope carried by an "edit" call.

    Missing params become an empty list, never null: the core expects a
    value in that slot.

    Raises:
        SerializationError: If view_id or params cannot be represented on the wire
    """
    params_value = to_wire_value(params) if params is not None else []
    envelope = EditParams(
        method=method_name(method),
        view_id=to_wire_value(view_id),
        params=params_value,
    )
    return envelope.model_dump()
