from assetdesk.db.persistence import RETURNS
from assetdesk.schemas.asset_return import AssetReturn
from assetdesk.stores.base import CollectionStore


class AssetReturnStore(CollectionStore[AssetReturn]):
    collection_name = RETURNS
    model = AssetReturn
    id_prefix = "RET"
