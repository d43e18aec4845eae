"""xi-client - async RPC client for the xi editor core.

Sends editor commands (movement, selection, editing, search, view and
plugin lifecycle) to a core process as notifications or requests.

Usage:
    from xi_client import create_subprocess_client

    async with create_subprocess_client() as client:
        await client.client_started()
        view_id = await client.new_view("notes.txt")
        await client.insert(view_id, "hello")
        await client.save(view_id, "notes.txt")
"""

from .client import CoreClient, create_subprocess_client, create_test_client
from .errors import (
    ClientError,
    ErrorReturned,
    NotifyFailed,
    RequestFailed,
    SerializationError,
    TransportError,
)
from .protocol import RpcNotification, RpcRequest, RpcResponse, compose_edit_params
from .structs import EditMethod, GestureType, ModifySelection, ViewId
from .transport import (
    BaseCoreTransport,
    CoreTransport,
    MockCoreTransport,
    StdioCoreTransport,
    TransportConfig,
    TransportState,
    create_mock_transport,
    create_stdio_transport,
)

__all__ = [
    # Client
    "CoreClient",
    "create_subprocess_client",
    "create_test_client",
    "compose_edit_params",
    # Errors
    "ClientError",
    "SerializationError",
    "NotifyFailed",
    "RequestFailed",
    "ErrorReturned",
    "TransportError",
    # Transport Protocol & Base
    "CoreTransport",
    "BaseCoreTransport",
    "TransportConfig",
    "TransportState",
    # Transport Implementations
    "StdioCoreTransport",
    "MockCoreTransport",
    "create_stdio_transport",
    "create_mock_transport",
    # Types
    "ViewId",
    "ModifySelection",
    "GestureType",
    "EditMethod",
    "RpcNotification",
    "RpcRequest",
    "RpcResponse",
]
