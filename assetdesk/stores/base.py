from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from assetdesk.core.logging import get_logger
from assetdesk.db.persistence import PersistenceAdapter

logger = get_logger("stores")

T = TypeVar("T", bound=BaseModel)


class CollectionStore(Generic[T]):
    """In-memory copy of one collection, written back whole on every change.

    ``items`` is replaced only after the adapter write succeeded, so a
    failed write leaves the in-memory state as it was.
    """

    collection_name: str = ""
    model: Type[T]
    id_prefix: str = ""

    def __init__(self, adapter: PersistenceAdapter):
        self.adapter = adapter
        self.items: List[T] = []
        self.is_loading = False
        self.is_saving = False

    def load(self, documents: List[Dict[str, Any]]) -> None:
        self.items = [self.model.model_validate(doc) for doc in documents]

    async def fetch(self) -> None:
        self.is_loading = True
        try:
            data = await self.adapter.fetch_all_data()
            self.load(data.get(self.collection_name, []))
        finally:
            self.is_loading = False

    def get(self, entity_id: str) -> Optional[T]:
        return next((e for e in self.items if e.id == entity_id), None)

    def next_id(self) -> str:
        """Next sequential id, e.g. ``LREQ-004`` after ``LREQ-003``."""
        prefix = f"{self.id_prefix}-"
        highest = 0
        for entity in self.items:
            if not entity.id.startswith(prefix):
                continue
            suffix = entity.id[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:03d}"

    async def replace_all(self, updated: List[T]) -> None:
        self.is_saving = True
        try:
            await self.adapter.update_data(
                self.collection_name,
                [e.model_dump(mode="json", by_alias=True) for e in updated],
            )
        finally:
            self.is_saving = False
        self.items = updated

    async def add(self, entity: T) -> T:
        await self.replace_all([entity, *self.items])
        logger.info(f"Added to {self.collection_name}: id={entity.id}")
        return entity

    async def update(self, entity_id: str, **changes: Any) -> Optional[T]:
        """Merge ``changes`` into the entity. Returns None when it does not exist."""
        current = self.get(entity_id)
        if current is None:
            return None

        merged = self.model.model_validate({**current.model_dump(), **changes})
        updated = [merged if e.id == entity_id else e for e in self.items]
        await self.replace_all(updated)
        logger.info(
            f"Updated {self.collection_name}: id={entity_id} fields={sorted(changes)}"
        )
        return merged
