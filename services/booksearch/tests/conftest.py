import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from app.main import app, get_http_client
from tests.fakes import Upstream


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest_asyncio.fixture
async def http_client(upstream):
    async with httpx.AsyncClient(transport=upstream.transport()) as client:
        yield client


@pytest.fixture
def api(upstream):
    """TestClient whose outbound calls all go to the fake upstream."""
    async def _client():
        async with httpx.AsyncClient(transport=upstream.transport()) as client:
            yield client

    app.dependency_overrides[get_http_client] = _client
    yield TestClient(app)
    app.dependency_overrides.clear()
