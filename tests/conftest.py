"""Pytest configuration and shared fixtures."""

import pytest

from xi_client.client import CoreClient
from xi_client.structs import ViewId
from xi_client.transport import MockCoreTransport


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture
def view_id() -> ViewId:
    """A view id as the core hands them out."""
    return ViewId("view-id-1")


@pytest.fixture
def transport() -> MockCoreTransport:
    """Mock transport answering every request with a null result."""
    return MockCoreTransport()


@pytest.fixture
async def client(anyio_backend, transport: MockCoreTransport):
    """Connected client over the mock transport."""
    client = CoreClient(transport)
    await client.connect()
    yield client
    await client.disconnect()
