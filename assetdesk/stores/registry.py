from dataclasses import dataclass
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assetdesk.core.logging import get_logger
from assetdesk.db.persistence import PersistenceAdapter
from assetdesk.stores.asset import AssetStore
from assetdesk.stores.asset_return import AssetReturnStore
from assetdesk.stores.base import CollectionStore
from assetdesk.stores.handover import HandoverStore
from assetdesk.stores.loan_request import LoanRequestStore

logger = get_logger("stores.registry")


@dataclass
class Stores:
    """Handles to every entity store, passed to services that touch several of them."""

    adapter: PersistenceAdapter
    assets: AssetStore
    loan_requests: LoanRequestStore
    handovers: HandoverStore
    returns: AssetReturnStore

    @classmethod
    def build(cls, session_factory: async_sessionmaker[AsyncSession]) -> "Stores":
        adapter = PersistenceAdapter(session_factory)
        return cls(
            adapter=adapter,
            assets=AssetStore(adapter),
            loan_requests=LoanRequestStore(adapter),
            handovers=HandoverStore(adapter),
            returns=AssetReturnStore(adapter),
        )

    def all(self) -> List[CollectionStore]:
        return [self.assets, self.loan_requests, self.handovers, self.returns]

    async def fetch_all(self) -> None:
        """Load every store from a single snapshot."""
        for store in self.all():
            store.is_loading = True
        try:
            data = await self.adapter.fetch_all_data()
            for store in self.all():
                store.load(data.get(store.collection_name, []))
        finally:
            for store in self.all():
                store.is_loading = False
        logger.info(
            "Stores loaded: "
            + " ".join(f"{s.collection_name}={len(s.items)}" for s in self.all())
        )
