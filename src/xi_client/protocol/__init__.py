"""Wire protocol spoken with the core.

Key concepts:
- Notifications: one-way messages, no id, no reply
- Requests: messages with an id, answered by exactly one reply
- Replies: carry the request's id and either a result or an error
- Edit calls: per-view commands nested inside an outer "edit" method
"""

from .messages import (
    EditParams,
    RpcNotification,
    RpcRequest,
    RpcResponse,
    compose_edit_params,
    method_name,
    to_wire_value,
)

__all__ = [
    "EditParams",
    "RpcNotification",
    "RpcRequest",
    "RpcResponse",
    "compose_edit_params",
    "method_name",
    "to_wire_value",
]
