from assetdesk.db.persistence import HANDOVERS
from assetdesk.schemas.handover import Handover
from assetdesk.stores.base import CollectionStore


class HandoverStore(CollectionStore[Handover]):
    collection_name = HANDOVERS
    model = Handover
    id_prefix = "HO"
