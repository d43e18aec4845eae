"""Transport layer between the client and the core process.

Architecture:
- CoreTransport is the PROTOCOL (interface) the client talks to
- BaseCoreTransport correlates replies with pending requests by id,
  queues inbound notifications and answers inbound requests
- Implementations only move JSON lines (subprocess pipes, in-memory mock)

The transport reports failures with builtin exceptions:
- ConnectionError: not connected, connection lost, process exited
- TransportError (a ConnectionError): malformed reply
- TimeoutError: no reply within the configured timeout

Mapping those to client errors is the client's job, not the transport's.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import os
import shlex
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from .errors import TransportError
from .protocol.messages import RpcNotification, RpcRequest, RpcResponse, to_wire_value

logger = logging.getLogger(__name__)

# Handler for requests initiated by the core: (method, params) -> result
RequestHandler = Callable[[str, Any], Awaitable[Any]]

# Error codes used when answering requests from the core
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

# Buffer limit for a single line from the core; view updates can be large
STREAM_LIMIT = 16 * 1024 * 1024


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    BROKEN = "broken"  # connection lost, resources not yet released
    CLOSED = "closed"


@dataclass
class TransportConfig:
    """Configuration for core transports."""

    # Core process
    command: list[str] = field(default_factory=lambda: ["xi-core"])
    working_directory: str | None = None
    env: dict[str, str] | None = None

    # Seconds to wait for a reply; None waits forever
    timeout: float | None = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TransportConfig:
        """Build a config, overriding defaults from the environment.

        Reads:
            XI_CORE_COMMAND: Core command line (shell syntax)
            XI_CORE_TIMEOUT: Reply timeout in seconds (0 disables)
        """
        environ = os.environ if environ is None else environ
        config = cls()

        command = environ.get("XI_CORE_COMMAND")
        if command:
            config.command = shlex.split(command)

        timeout = environ.get("XI_CORE_TIMEOUT")
        if timeout:
            seconds = float(timeout)
            config.timeout = seconds if seconds > 0 else None

        return config


@runtime_checkable
class CoreTransport(Protocol):
    """Protocol for transports to the core.

    All transports must implement:
    - connect/disconnect: Lifecycle management
    - notify: Hand off a one-way message
    - request: Send a message and wait for its correlated reply
    - notifications: Stream of notifications sent by the core
    - on_request: Handler for requests sent by the core
    """

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        ...

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        ...

    async def connect(self) -> None:
        """Establish the connection.

        Raises:
            ConnectionError: If connection fails
        """
        ...

    async def disconnect(self) -> None:
        """Close the connection gracefully."""
        ...

    async def notify(self, method: str, params: Any) -> None:
        """Send a notification.

        Returns once the message is handed off; delivery is not confirmed.

        Raises:
            ConnectionError: If the message could not be handed off
        """
        ...

    async def request(self, method: str, params: Any) -> RpcResponse:
        """Send a request and wait for the reply.

        Returns the reply whether it carries a result or an error.

        Raises:
            ConnectionError: If the connection is lost or the reply is malformed
            TimeoutError: If no reply arrives within the timeout
        """
        ...

    def notifications(self) -> AsyncIterator[RpcNotification]:
        """Yield notifications sent by the core."""
        ...

    def on_request(self, handler: RequestHandler | None) -> None:
        """Register the handler for requests sent by the core."""
        ...


class BaseCoreTransport(ABC):
    """Base class for core transports with common functionality.

    Provides:
    - State management
    - Request ids and reply correlation
    - Routing of inbound notifications and requests
    - Background reader task management
    """

    def __init__(self, config: TransportConfig):
        self.config = config
        self._state = TransportState.DISCONNECTED
        self._notification_queue: asyncio.Queue[RpcNotification] = asyncio.Queue()
        self._pending_requests: dict[int | str, asyncio.Future[RpcResponse]] = {}
        self._request_ids = itertools.count()
        self._request_handler: RequestHandler | None = None
        self._handler_tasks: set[asyncio.Task[None]] = set()
        self._reader_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._state == TransportState.CONNECTED

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a reply."""
        return len(self._pending_requests)

    async def connect(self) -> None:
        """Establish connection."""
        async with self._lock:
            if self._state == TransportState.CONNECTED:
                return

            self._state = TransportState.CONNECTING
            try:
                await self._do_connect()
                self._state = TransportState.CONNECTED

                # Start background reader
                self._reader_task = asyncio.create_task(self._read_loop())

                logger.info(f"{self.__class__.__name__} connected")
            except Exception as e:
                self._state = TransportState.DISCONNECTED
                raise ConnectionError(f"Failed to connect: {e}") from e

    async def disconnect(self) -> None:
        """Close the connection."""
        async with self._lock:
            if self._state in (TransportState.DISCONNECTED, TransportState.CLOSED):
                return

            self._state = TransportState.CLOSED

            # Cancel reader task
            if self._reader_task:
                self._reader_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._reader_task
                self._reader_task = None

            current = asyncio.current_task()
            handler_tasks = [t for t in self._handler_tasks if t is not current]
            for task in handler_tasks:
                task.cancel()
            await asyncio.gather(*handler_tasks, return_exceptions=True)

            self._fail_pending("Transport disconnected")

            await self._do_disconnect()
            self._state = TransportState.DISCONNECTED
            logger.info(f"{self.__class__.__name__} disconnected")

    async def notify(self, method: str, params: Any) -> None:
        """Send a notification."""
        if not self.is_connected:
            raise ConnectionError("Transport not connected")

        await self._write(RpcNotification(method=method, params=params).model_dump_json())

    async def request(self, method: str, params: Any) -> RpcResponse:
        """Send a request and wait for its reply."""
        if not self.is_connected:
            raise ConnectionError("Transport not connected")

        # Register before sending so a fast reply is never missed
        request_id = next(self._request_ids)
        future: asyncio.Future[RpcResponse] = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        try:
            message = RpcRequest(id=request_id, method=method, params=params)
            await self._write(message.model_dump_json())
            try:
                return await asyncio.wait_for(future, timeout=self.config.timeout)
            except TimeoutError as e:
                raise TimeoutError(
                    f"No reply to '{method}' (id={request_id}) within {self.config.timeout}s"
                ) from e
        finally:
            self._pending_requests.pop(request_id, None)

    async def notifications(self) -> AsyncIterator[RpcNotification]:
        """Yield notifications sent by the core."""
        while self.is_connected or not self._notification_queue.empty():
            try:
                notification = await asyncio.wait_for(self._notification_queue.get(), timeout=1.0)
                yield notification
            except TimeoutError:
                continue

    def on_request(self, handler: RequestHandler | None) -> None:
        """Register the handler for requests sent by the core."""
        self._request_handler = handler

    async def _write(self, data: str) -> None:
        """Send one message, serialized against concurrent writers."""
        async with self._write_lock:
            await self._do_send(data)

    async def _read_loop(self) -> None:
        """Background task reading messages and routing them."""
        reason = "Connection to core closed"
        try:
            async for message in self._receive_messages():
                await self._handle_message(message)
        except asyncio.CancelledError:
            return
        except Exception as e:
            logger.error(f"Read loop error: {e}")
            reason = f"Transport error: {e}"

        if self._state == TransportState.CONNECTED:
            self._state = TransportState.BROKEN
        logger.info(f"{self.__class__.__name__} read loop ended: {reason}")
        self._fail_pending(reason)

    async def _handle_message(self, message: Any) -> None:
        """Route one inbound message."""
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-object message: {message!r}")
            return

        if "method" in message:
            try:
                if "id" in message:
                    self._start_request_handler(RpcRequest.model_validate(message))
                else:
                    await self._notification_queue.put(RpcNotification.model_validate(message))
            except ValidationError as e:
                logger.warning(f"Ignoring invalid message from core: {e}")
            return

        if "id" in message:
            self._resolve_request(message)
            return

        logger.warning(f"Ignoring message without method or id: {message!r}")

    def _resolve_request(self, message: dict[str, Any]) -> None:
        """Complete the pending request a reply belongs to."""
        request_id = message["id"]
        # bool is an int subclass; True would match request id 1
        if not isinstance(request_id, (int, str)) or isinstance(request_id, bool):
            logger.warning(f"Ignoring reply with invalid id: {request_id!r}")
            return

        future = self._pending_requests.get(request_id)
        if future is None or future.done():
            logger.warning(f"Received reply for unknown request: {request_id}")
            return

        try:
            response = RpcResponse.model_validate(message)
        except ValidationError as e:
            future.set_exception(TransportError(f"Malformed reply to request {request_id}: {e}"))
            return

        future.set_result(response)

    def _fail_pending(self, reason: str) -> None:
        """Fail every pending request with a connection error."""
        for future in self._pending_requests.values():
            if not future.done():
                future.set_exception(ConnectionError(reason))
        self._pending_requests.clear()

    def _start_request_handler(self, message: RpcRequest) -> None:
        # Answered in a task: the handler may itself issue requests,
        # which need the read loop to keep running.
        task = asyncio.create_task(self._answer_request(message))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    async def _answer_request(self, message: RpcRequest) -> None:
        """Run the request handler and send its reply to the core."""
        if self._request_handler is None:
            response = RpcResponse.failure(
                message.id,
                {"code": METHOD_NOT_FOUND, "message": f"No handler for method: {message.method}"},
            )
        else:
            try:
                result = await self._request_handler(message.method, message.params)
                response = RpcResponse.success(message.id, to_wire_value(result))
            except Exception as e:
                logger.exception(f"Error handling request {message.method}: {e}")
                response = RpcResponse.failure(
                    message.id,
                    {"code": INTERNAL_ERROR, "message": str(e)},
                )

        try:
            await self._write(response.to_json())
        except ConnectionError as e:
            logger.warning(f"Could not answer request {message.id}: {e}")

    # Abstract methods for subclasses
    @abstractmethod
    async def _do_connect(self) -> None:
        """Implementation-specific connection logic."""
        ...

    @abstractmethod
    async def _do_disconnect(self) -> None:
        """Implementation-specific disconnection logic."""
        ...

    @abstractmethod
    async def _do_send(self, data: str) -> None:
        """Implementation-specific send of one serialized message.

        Must raise ConnectionError if the message cannot be handed off.
        """
        ...

    @abstractmethod
    def _receive_messages(self) -> AsyncIterator[Any]:
        """Implementation-specific receive logic. Must be an async generator
        of decoded JSON values, ending when the connection closes."""
        ...

    async def __aenter__(self) -> BaseCoreTransport:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()


class StdioCoreTransport(BaseCoreTransport):
    """Transport over the core's stdin/stdout.

    Launches the core as a subprocess and communicates via
    newline-delimited JSON. The core's stderr is forwarded to the log.
    """

    def __init__(self, config: TransportConfig | None = None):
        super().__init__(config or TransportConfig())
        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int | None:
        """Process id of the running core."""
        return self._process.pid if self._process else None

    async def _do_connect(self) -> None:
        """Launch subprocess and establish communication."""
        cmd = self.config.command

        # Build environment
        env = None
        if self.config.env:
            env = {**os.environ, **self.config.env}

        self._process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.config.working_directory,
            env=env,
            limit=STREAM_LIMIT,
        )

        # Start stderr reader (for logging)
        self._stderr_task = asyncio.create_task(self._read_stderr())

        logger.info(f"Launched core: {' '.join(cmd)} (pid={self._process.pid})")

    async def _do_disconnect(self) -> None:
        """Terminate subprocess."""
        if self._stderr_task:
            self._stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stderr_task
            self._stderr_task = None

        if self._process:
            if self._process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    self._process.terminate()
                try:
                    await asyncio.wait_for(self._process.wait(), timeout=5.0)
                except TimeoutError:
                    self._process.kill()
                    await self._process.wait()
            logger.info(
                f"Core terminated (pid={self._process.pid}, code={self._process.returncode})"
            )
            self._process = None

    async def _do_send(self, data: str) -> None:
        """Send message as JSON line to stdin."""
        if not self._process or not self._process.stdin:
            raise ConnectionError("Core process not running")
        if self._process.returncode is not None:
            raise ConnectionError(f"Core process exited with code {self._process.returncode}")

        self._process.stdin.write((data + "\n").encode("utf-8"))
        await self._process.stdin.drain()

    async def _receive_messages(self) -> AsyncIterator[Any]:
        """Read messages from stdout."""
        if not self._process or not self._process.stdout:
            raise ConnectionError("Core process not running")

        while True:
            line = await self._process.stdout.readline()
            if not line:
                # EOF - process exited
                break

            try:
                line_str = line.decode("utf-8").strip()
            except UnicodeDecodeError as e:
                logger.debug(f"Skipping undecodable line: {e} (line: {line[:50]!r})")
                continue
            if not line_str:
                continue

            # Skip non-JSON lines (e.g., log output that leaked to stdout)
            if not line_str.startswith("{"):
                logger.debug(f"Skipping non-JSON line: {line_str[:50]}")
                continue

            try:
                yield json.loads(line_str)
            except json.JSONDecodeError as e:
                logger.debug(f"Failed to parse message: {e} (line: {line_str[:50]})")

    async def _read_stderr(self) -> None:
        """Read and log stderr output."""
        if not self._process or not self._process.stderr:
            return

        try:
            while True:
                line = await self._process.stderr.readline()
                if not line:
                    break
                logger.debug(f"[core stderr] {line.decode('utf-8', errors='replace').rstrip()}")
        except asyncio.CancelledError:
            pass


class MockCoreTransport(BaseCoreTransport):
    """Mock transport for testing.

    Records every outbound message as decoded JSON and answers requests
    from canned replies. No actual I/O - everything is in-memory.

    Usage:
        transport = MockCoreTransport()
        transport.set_response("new_view", "view-id-1")

        client = CoreClient(transport)
        await client.connect()
        view_id = await client.new_view()

        assert transport.recorded_messages[0]["method"] == "new_view"

    With auto_reply=False requests stay pending until reply() or
    reply_error() is called with their id.
    """

    def __init__(self, auto_reply: bool = True) -> None:
        super().__init__(TransportConfig(command=[], timeout=None))
        self.auto_reply = auto_reply
        self.fail_sends = False
        self._responses: dict[str, dict[str, Any]] = {}
        self._recorded_messages: list[dict[str, Any]] = []
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    @property
    def recorded_messages(self) -> list[dict[str, Any]]:
        """All messages sent through this transport, as decoded JSON."""
        return self._recorded_messages.copy()

    @property
    def recorded_requests(self) -> list[dict[str, Any]]:
        """Sent messages that carry an id and a method."""
        return [m for m in self._recorded_messages if "id" in m and "method" in m]

    def set_response(self, method: str, result: Any) -> None:
        """Reply to every request for `method` with `result`."""
        self._responses[method] = {"result": result}

    def set_error(self, method: str, error: Any) -> None:
        """Reply to every request for `method` with an error payload."""
        self._responses[method] = {"error": error}

    def reply(self, request_id: int | str, result: Any = None) -> None:
        """Deliver a successful reply for a pending request."""
        self.inject_message({"id": request_id, "result": result})

    def reply_error(self, request_id: int | str, error: Any) -> None:
        """Deliver an error reply for a pending request."""
        self.inject_message({"id": request_id, "error": error})

    def inject_message(self, message: Any) -> None:
        """Deliver a raw message as if the core had sent it."""
        self._incoming.put_nowait(message)

    def drop_connection(self) -> None:
        """Simulate the core going away: pending requests fail."""
        self._incoming.put_nowait(None)

    def clear(self) -> None:
        """Clear recorded messages and canned replies."""
        self._recorded_messages.clear()
        self._responses.clear()

    async def _do_connect(self) -> None:
        """No-op for mock."""
        pass

    async def _do_disconnect(self) -> None:
        """No-op for mock."""
        pass

    async def _do_send(self, data: str) -> None:
        """Record message and queue canned reply."""
        if self.fail_sends:
            raise ConnectionResetError("Mock connection reset")

        message = json.loads(data)
        self._recorded_messages.append(message)

        if self.auto_reply and "id" in message and "method" in message:
            outcome = self._responses.get(message["method"], {"result": None})
            self.inject_message({"id": message["id"], **outcome})

    async def _receive_messages(self) -> AsyncIterator[Any]:
        """Yield injected messages until the connection is dropped."""
        while True:
            message = await self._incoming.get()
            if message is None:
                break
            yield message


# Factory functions


def create_stdio_transport(
    command: list[str] | None = None,
    working_directory: str | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = 30.0,
) -> StdioCoreTransport:
    """Create a stdio transport that launches the core as a subprocess.

    Args:
        command: Core command line (default: ["xi-core"])
        working_directory: CWD for subprocess
        env: Additional environment variables
        timeout: Seconds to wait for each reply (None waits forever)

    Returns:
        StdioCoreTransport configured for subprocess communication
    """
    config = TransportConfig(
        command=command or ["xi-core"],
        working_directory=working_directory,
        env=env,
        timeout=timeout,
    )
    return StdioCoreTransport(config)


def create_mock_transport(auto_reply: bool = True) -> MockCoreTransport:
    """Create a mock transport for testing.

    Returns:
        MockCoreTransport for testing
    """
    return MockCoreTransport(auto_reply=auto_reply)
