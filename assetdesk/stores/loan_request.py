from assetdesk.db.persistence import LOAN_REQUESTS
from assetdesk.schemas.loan import LoanRequest
from assetdesk.stores.base import CollectionStore


class LoanRequestStore(CollectionStore[LoanRequest]):
    collection_name = LOAN_REQUESTS
    model = LoanRequest
    id_prefix = "LREQ"
