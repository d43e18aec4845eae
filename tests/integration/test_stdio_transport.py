"""Integration tests for the stdio transport.

Runs a small stand-in core (a Python script) as a real subprocess,
verifying:
- JSON line framing over stdin/stdout
- Reply correlation and error replies
- Notifications and requests initiated by the core
- Behavior when the core exits or cannot be started
"""

import asyncio
import sys

import pytest

from xi_client.client import CoreClient, create_subprocess_client
from xi_client.errors import ErrorReturned, NotifyFailed, RequestFailed
from xi_client.transport import StdioCoreTransport, TransportConfig, TransportState

# =============================================================================
# Helpers
# =============================================================================


FAKE_CORE = r"""
import json
import sys

def send(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()

print("fake core starting", flush=True)
print("fake core log line", file=sys.stderr, flush=True)

for line in sys.stdin:
    message = json.loads(line)
    method = message.get("method")

    if "id" not in message:
        if method == "echo_note":
            send({"method": "update", "params": message["params"]})
        continue

    request_id = message["id"]
    if method == "new_view":
        send({"id": request_id, "result": "view-id-1"})
    elif method == "edit" and message["params"]["method"] == "copy":
        send({"id": request_id, "result": "copied"})
    elif method == "fail":
        send({"id": request_id, "error": {"code": 1, "message": "boom"}})
    elif method == "ask_client":
        send({"id": "core-1", "method": "measure_width", "params": [{"id": 0, "strings": ["abc"]}]})
        answer = json.loads(sys.stdin.readline())
        send({"id": request_id, "result": answer})
    elif method == "garbage_then_reply":
        sys.stdout.flush()
        sys.stdout.buffer.write(b"\xff\xfe garbage\n")
        sys.stdout.buffer.flush()
        send({"id": request_id, "result": "after garbage"})
    elif method == "exit":
        sys.exit(0)
    else:
        send({"id": request_id, "result": None})
"""


FAKE_CORE_COMMAND = [sys.executable, "-u", "-X", "utf8", "-c", FAKE_CORE]


def fake_core_client(timeout: float | None = 10.0) -> CoreClient:
    """Client launching the fake core with the current interpreter."""
    return create_subprocess_client(
        command=FAKE_CORE_COMMAND,
        timeout=timeout,
    )


async def wait_for_state(transport, state: TransportState) -> None:
    for _ in range(400):
        if transport.state == state:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"transport stayed {transport.state}, expected {state}")


# =============================================================================
# Tests: Requests and Replies
# =============================================================================


class TestRequests:
    """Test request/reply round trips through a real subprocess."""

    @pytest.mark.anyio
    async def test_new_view(self):
        async with fake_core_client() as client:
            await client.client_started()

            view_id = await client.new_view()

        assert view_id == "view-id-1"

    @pytest.mark.anyio
    async def test_edit_request(self):
        async with fake_core_client() as client:
            assert await client.copy("view-id-1") == "copied"

    @pytest.mark.anyio
    async def test_error_reply(self):
        async with fake_core_client() as client:
            with pytest.raises(ErrorReturned) as exc_info:
                await client.request("fail", {})

            assert exc_info.value.value == {"code": 1, "message": "boom"}
            # The connection survives an error reply
            assert await client.copy("view-id-1") == "copied"

    @pytest.mark.anyio
    async def test_concurrent_requests(self):
        async with fake_core_client() as client:
            results = await asyncio.gather(
                client.new_view(),
                client.copy("view-id-1"),
                client.request("anything", []),
            )

        assert results == ["view-id-1", "copied", None]

    @pytest.mark.anyio
    async def test_noise_on_stdout_is_skipped(self):
        """Non-JSON lines printed by the core do not break the stream."""
        async with fake_core_client() as client:
            assert await client.new_view() == "view-id-1"
            assert client.is_connected

    @pytest.mark.anyio
    async def test_undecodable_line_is_skipped(self):
        """A line that is not valid UTF-8 is dropped; the connection survives."""
        async with fake_core_client() as client:
            assert await client.request("garbage_then_reply", {}) == "after garbage"

            assert client.transport.state == TransportState.CONNECTED
            assert await client.new_view() == "view-id-1"

    @pytest.mark.anyio
    async def test_unicode_round_trip(self):
        async with fake_core_client() as client:
            await client.notify("echo_note", {"chars": "héllo 世界 🌍"})

            note = await anext(client.notifications())

        assert note.params == {"chars": "héllo 世界 🌍"}


# =============================================================================
# Tests: Messages From the Core
# =============================================================================


class TestCoreInitiated:
    """Test notifications and requests sent by the core."""

    @pytest.mark.anyio
    async def test_notification_from_core(self):
        async with fake_core_client() as client:
            await client.notify("echo_note", {"view_id": "view-id-1", "rev": 3})

            note = await asyncio.wait_for(anext(client.notifications()), timeout=10)

        assert note.method == "update"
        assert note.params == {"view_id": "view-id-1", "rev": 3}

    @pytest.mark.anyio
    async def test_request_from_core(self):
        """The core's request is answered while our own request is pending."""

        async def measure(method, params):
            return [[len(s) for s in group["strings"]] for group in params]

        async with fake_core_client() as client:
            client.transport.on_request(measure)

            answer = await client.request("ask_client", {})

        assert answer == {"id": "core-1", "result": [[3]]}


# =============================================================================
# Tests: Process Lifecycle
# =============================================================================


class TestLifecycle:
    """Test behavior around process start and exit."""

    @pytest.mark.anyio
    async def test_core_exit_fails_pending_request(self):
        async with fake_core_client() as client:
            with pytest.raises(RequestFailed) as exc_info:
                await client.request("exit", {})

            assert isinstance(exc_info.value.__cause__, ConnectionError)

            await wait_for_state(client.transport, TransportState.BROKEN)
            with pytest.raises(NotifyFailed):
                await client.undo("view-id-1")

    @pytest.mark.anyio
    async def test_disconnect_terminates_process(self):
        transport = StdioCoreTransport(TransportConfig(command=FAKE_CORE_COMMAND))
        await transport.connect()
        assert transport.pid is not None

        await transport.disconnect()

        assert transport.pid is None
        assert transport.state == TransportState.DISCONNECTED

    @pytest.mark.anyio
    async def test_missing_core_binary(self, tmp_path):
        transport = StdioCoreTransport(TransportConfig(command=[str(tmp_path / "no-such-core")]))

        with pytest.raises(ConnectionError, match="Failed to connect"):
            await transport.connect()

        assert transport.state == TransportState.DISCONNECTED

    @pytest.mark.anyio
    async def test_environment_is_passed(self, tmp_path):
        """Extra env and working directory reach the core."""
        script = (
            "import json, os, sys\n"
            "line = sys.stdin.readline()\n"
            "msg = json.loads(line)\n"
            "result = [os.environ.get('XI_TEST_FLAG'), os.getcwd()]\n"
            "print(json.dumps({'id': msg['id'], 'result': result}), flush=True)\n"
        )
        client = create_subprocess_client(
            command=[sys.executable, "-u", "-c", script],
            working_directory=str(tmp_path),
            env={"XI_TEST_FLAG": "on"},
            timeout=10.0,
        )

        async with client:
            flag, cwd = await client.request("probe", {})

        assert flag == "on"
        assert cwd == str(tmp_path.resolve()) or cwd == str(tmp_path)
