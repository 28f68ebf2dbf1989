"""Key-value document store with whole-collection replace semantics.

Every write replaces the entire named collection. There are no partial
updates and no version checks: concurrent writers overwrite each other
(last write wins).
"""
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assetdesk.core.exceptions import PersistenceError
from assetdesk.core.logging import get_logger
from assetdesk.db.models import StoredCollection

logger = get_logger("db.persistence")

ASSETS = "assets"
LOAN_REQUESTS = "loanRequests"
HANDOVERS = "handovers"
RETURNS = "returns"

KNOWN_COLLECTIONS = (
    ASSETS,
    LOAN_REQUESTS,
    HANDOVERS,
    RETURNS,
    "requests",
    "dismantles",
    "maintenances",
    "installations",
    "customers",
    "users",
    "divisions",
    "assetCategories",
)


class PersistenceAdapter:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch_all_data(self) -> Dict[str, List[Dict[str, Any]]]:
        """Full snapshot of every collection. Unwritten collections come back empty."""
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(StoredCollection))
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Gagal memuat data: {e}", extra={"extra_data": {"operation": "fetch_all"}})
            raise PersistenceError("Gagal memuat data.") from e

        snapshot: Dict[str, List[Dict[str, Any]]] = {name: [] for name in KNOWN_COLLECTIONS}
        for row in rows:
            snapshot[row.name] = list(row.documents or [])
        return snapshot

    async def update_data(
        self, name: str, documents: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Replace the named collection with ``documents``."""
        try:
            async with self.session_factory() as db:
                row = await db.get(StoredCollection, name)
                if row is None:
                    db.add(StoredCollection(name=name, documents=documents))
                else:
                    row.documents = documents
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(
                f"Gagal menyimpan koleksi '{name}': {e}",
                extra={"extra_data": {"operation": "update", "collection": name}},
            )
            raise PersistenceError(f"Gagal menyimpan {name}.", collection=name) from e

        logger.debug(f"Collection replaced: name={name} size={len(documents)}")
        return documents
