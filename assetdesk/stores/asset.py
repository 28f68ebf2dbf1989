from typing import List

from assetdesk.db.persistence import ASSETS
from assetdesk.schemas.asset import Asset, AssetStatus
from assetdesk.stores.base import CollectionStore


def stock_key(name: str, brand: str) -> str:
    """Key that groups interchangeable units: trimmed, case-insensitive name and brand."""
    return f"{name.strip()}|{brand.strip()}".lower()


class AssetStore(CollectionStore[Asset]):
    collection_name = ASSETS
    model = Asset
    id_prefix = "AST"

    def in_storage(self) -> List[Asset]:
        return [a for a in self.items if a.status == AssetStatus.IN_STORAGE]

    def available_in_storage(self, name: str, brand: str) -> int:
        key = stock_key(name, brand)
        return sum(1 for a in self.in_storage() if stock_key(a.name, a.brand) == key)
