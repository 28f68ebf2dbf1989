"""
Shared fixtures for unit tests.
Uses an in-memory SQLite database for fast isolated testing.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from assetdesk.core.exceptions import PersistenceError
from assetdesk.db.models import Base
from assetdesk.db.persistence import PersistenceAdapter
from assetdesk.db.session import build_engine, build_session_factory
from assetdesk.schemas.actor import Actor
from assetdesk.core.permissions import resolve_permissions
from assetdesk.schemas.asset import Asset, AssetStatus
from assetdesk.schemas.loan import ItemDecision, ItemDecisionStatus, LoanItem, LoanRequest, LoanRequestStatus
from assetdesk.stores.registry import Stores


@pytest_asyncio.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine):
    return build_session_factory(async_engine)


@pytest_asyncio.fixture
async def stores(session_factory) -> Stores:
    """Empty stores backed by the in-memory database."""
    stores = Stores.build(session_factory)
    await stores.fetch_all()
    return stores


class FlakyAdapter(PersistenceAdapter):
    """Adapter whose writes to the named collections fail."""

    def __init__(self, session_factory, failing=()):
        super().__init__(session_factory)
        self.failing = set(failing)
        self.writes: List[str] = []

    async def update_data(self, name, documents):
        if name in self.failing:
            raise PersistenceError(f"Gagal menyimpan {name}.", collection=name)
        self.writes.append(name)
        return await super().update_data(name, documents)


@pytest.fixture
def flaky_adapter(stores):
    """Swap a FlakyAdapter into every store. Set ``.failing`` to make writes fail."""
    adapter = FlakyAdapter(stores.adapter.session_factory)
    stores.adapter = adapter
    for store in stores.all():
        store.adapter = adapter
    return adapter


# ─── Helper factories ───────────────────────────────────────────


@pytest.fixture
def make_asset():
    """Factory fixture to create Asset instances."""
    def _make(
        id: str,
        name: str = "Router",
        brand: str = "TP-Link",
        status: AssetStatus = AssetStatus.IN_STORAGE,
        serial_number: str = None,
        current_user: str = None,
        location: str = "Gudang Inventori",
    ) -> Asset:
        return Asset(
            id=id,
            name=name,
            brand=brand,
            status=status,
            serial_number=serial_number or f"SN-{id}",
            current_user=current_user,
            location=location,
        )
    return _make


@pytest.fixture
def make_loan():
    """Factory fixture to create LoanRequest instances."""
    def _make(
        id: str = "LREQ-001",
        requester: str = "Andi",
        division: str = "NOC",
        status: LoanRequestStatus = LoanRequestStatus.PENDING,
        items: Optional[List[LoanItem]] = None,
        assigned_asset_ids: Optional[Dict[int, List[str]]] = None,
        returned_asset_ids: Optional[List[str]] = None,
        request_date: datetime = None,
        return_date: date = None,
    ) -> LoanRequest:
        items = items or [
            LoanItem(
                id=1,
                item_name="Router",
                brand="TP-Link",
                quantity=3,
                return_date=return_date or date.today() + timedelta(days=7),
                keterangan="Untuk site baru",
            )
        ]
        item_statuses = None
        if assigned_asset_ids is not None:
            item_statuses = {
                item.id: ItemDecision(
                    status=ItemDecisionStatus.APPROVED,
                    reason="",
                    approved_quantity=len(assigned_asset_ids.get(item.id, [])),
                )
                for item in items
            }
        return LoanRequest(
            id=id,
            requester=requester,
            division=division,
            request_date=request_date or datetime.now(timezone.utc),
            status=status,
            items=items,
            item_statuses=item_statuses,
            assigned_asset_ids=assigned_asset_ids,
            returned_asset_ids=returned_asset_ids or [],
        )
    return _make


@pytest.fixture
def make_actor():
    def _make(name: str = "Andi", role: str = "Staff", division: str = "NOC") -> Actor:
        return Actor(name=name, role=role, division=division, permissions=resolve_permissions(role))
    return _make


@pytest.fixture
def routers(make_asset):
    """Five in-storage TP-Link routers."""
    return [make_asset(f"AST-00{i}") for i in range(1, 6)]
