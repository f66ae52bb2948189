"""HTTP fixtures for router tests.

The app's lifespan is not run under ``ASGITransport``; the fixture installs a
service on ``app.state`` directly, the same place the lifespan puts it.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def memory_service(memory_store, clock):
    from keygate.features.keys.service import KeyService

    return KeyService(memory_store, clock=clock)


@pytest_asyncio.fixture
async def client(memory_service):
    """AsyncClient against the FastAPI app backed by an in-memory store."""
    from keygate.main import app

    app.state.key_service = memory_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.key_service = None
