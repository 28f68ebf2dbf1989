"""
Shared fixtures for functional tests.
Uses httpx.AsyncClient against the real FastAPI app with an in-memory SQLite DB.
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from assetdesk.api.v1.dependencies import get_stores
from assetdesk.core.security import create_access_token
from assetdesk.db.models import Base
from assetdesk.db.session import build_engine, build_session_factory
from assetdesk.main import app
from assetdesk.stores.registry import Stores


# ─── Store override ─────────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Create an in-memory SQLite engine for functional testing."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def test_stores(test_engine):
    """Stores backed by the test engine."""
    stores = Stores.build(build_session_factory(test_engine))
    await stores.fetch_all()
    return stores


@pytest_asyncio.fixture
async def client(test_stores):
    """Provide an httpx.AsyncClient with the stores overridden to use the test DB."""
    app.dependency_overrides[get_stores] = lambda: test_stores

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Auth helpers ───────────────────────────────────────────────

def issue_token(name: str, role: str, division: str = None) -> str:
    claims = {"sub": name, "role": role}
    if division:
        claims["division"] = division
    return create_access_token(data=claims)


@pytest_asyncio.fixture
async def staff_token():
    """Andi, a staff member of the NOC division."""
    return issue_token("Andi", "Staff", division="NOC")


@pytest_asyncio.fixture
async def other_staff_token():
    return issue_token("Budi", "Staff", division="Helpdesk")


@pytest_asyncio.fixture
async def logistik_token():
    """Sari, the logistics admin who reviews and hands over assets."""
    return issue_token("Sari", "Admin Logistik", division="Logistik")


@pytest_asyncio.fixture
async def routers_in_storage(client: AsyncClient, logistik_token):
    """Register five TP-Link routers and return their ids."""
    ids = []
    for i in range(1, 6):
        resp = await client.post(
            "/api/v1/assets",
            json={"name": "Router", "brand": "TP-Link", "serialNumber": f"RT-{i:04d}"},
            headers=auth_header(logistik_token),
        )
        assert resp.status_code == 201
        ids.append(resp.json()["id"])
    return ids


def auth_header(token: str) -> dict:
    """Return an Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}
