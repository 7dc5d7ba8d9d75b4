"""
API fixtures: the application wired to the shared fakes, and an ASGI client
"""
import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from callpilot.main import create_app


@pytest.fixture
def app(settings, tenants):
    return create_app(settings, tenants)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def path_of():
    """Path part of an absolute webhook URL, for posting it through the test client"""

    def _path(url: str) -> str:
        parsed = httpx.URL(url)
        query = parsed.query.decode()
        return f"{parsed.path}?{query}" if query else parsed.path

    return _path
