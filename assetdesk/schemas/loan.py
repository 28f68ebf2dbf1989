import enum
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import Field

from assetdesk.schemas.asset import Asset
from assetdesk.schemas.common import CamelModel


class LoanRequestStatus(str, enum.Enum):
    PENDING = "Menunggu Persetujuan"
    APPROVED = "Disetujui"
    ON_LOAN = "Dipinjam"
    AWAITING_RETURN = "Menunggu Pengembalian"
    RETURNED = "Dikembalikan"
    REJECTED = "Ditolak"
    OVERDUE = "Terlambat"


class ItemDecisionStatus(str, enum.Enum):
    APPROVED = "approved"
    PARTIAL = "partial"
    REJECTED = "rejected"


class LoanItem(CamelModel):
    id: int
    item_name: str
    brand: str
    quantity: int = Field(..., ge=1)
    return_date: Optional[date] = None
    keterangan: Optional[str] = None


class ItemDecision(CamelModel):
    status: ItemDecisionStatus
    reason: str = ""
    approved_quantity: int = Field(..., ge=0)


class LoanDecision(CamelModel):
    """Per-item outcome of a review, as produced by the assignment panel."""

    item_statuses: Dict[int, ItemDecision]
    assigned_asset_ids: Dict[int, List[str]] = {}


class LoanRequest(CamelModel):
    id: str
    requester: str
    division: str
    request_date: datetime
    status: LoanRequestStatus = LoanRequestStatus.PENDING
    items: List[LoanItem]
    notes: Optional[str] = None

    approver: Optional[str] = None
    approval_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    item_statuses: Optional[Dict[int, ItemDecision]] = None
    assigned_asset_ids: Optional[Dict[int, List[str]]] = None

    returned_asset_ids: List[str] = []
    actual_return_date: Optional[datetime] = None

    handover_id: Optional[str] = None

    def all_assigned_asset_ids(self) -> List[str]:
        return [
            asset_id
            for ids in (self.assigned_asset_ids or {}).values()
            for asset_id in ids
        ]

    def outstanding_asset_ids(self) -> List[str]:
        returned = set(self.returned_asset_ids)
        return [a for a in self.all_assigned_asset_ids() if a not in returned]


class LoanItemCreate(CamelModel):
    id: Optional[int] = None
    item_name: str = Field(..., min_length=1, max_length=255)
    brand: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1)
    return_date: Optional[date] = None
    keterangan: Optional[str] = None


class LoanRequestCreate(CamelModel):
    items: List[LoanItemCreate] = Field(..., min_length=1)
    division: Optional[str] = None
    notes: Optional[str] = None


class AssignmentItemDraft(CamelModel):
    item_id: int
    approved_quantity: int
    reason: str = ""
    asset_ids: List[Optional[str]] = []


class AssignmentDraft(CamelModel):
    items: List[AssignmentItemDraft] = []


class RejectLoanRequest(CamelModel):
    reason: str


class ScanRequest(CamelModel):
    item_id: int
    code: str = Field(..., min_length=1)
    claimed_asset_ids: List[str] = []


class ItemCandidates(CamelModel):
    item_id: int
    item_name: str
    brand: str
    requested_quantity: int
    candidates: List[Asset]


class ConfirmReturnRequest(CamelModel):
    # None selects every asset still on loan
    asset_ids: Optional[List[str]] = None


class LoanRequestListResponse(CamelModel):
    items: List[LoanRequest]
    total: int
    page: int
    size: int
    pages: int
