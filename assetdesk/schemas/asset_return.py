import enum
from datetime import date, datetime
from typing import List, Optional

from assetdesk.schemas.asset import AssetCondition
from assetdesk.schemas.common import CamelModel


class AssetReturnStatus(str, enum.Enum):
    PENDING_APPROVAL = "Menunggu Persetujuan"
    APPROVED = "Disetujui"
    REJECTED = "Ditolak"


class AssetReturn(CamelModel):
    id: str
    doc_number: str
    return_date: date
    loan_request_id: str
    asset_id: str
    asset_name: str
    returned_by: str
    received_by: Optional[str] = None
    returned_condition: AssetCondition
    notes: Optional[str] = None
    status: AssetReturnStatus = AssetReturnStatus.PENDING_APPROVAL
    approved_by: Optional[str] = None
    approval_date: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class AssetReturnCreate(CamelModel):
    loan_request_id: str
    asset_id: str
    returned_condition: AssetCondition = AssetCondition.GOOD
    notes: Optional[str] = None
    return_date: Optional[date] = None


class RejectReturnRequest(CamelModel):
    reason: str


class AssetReturnListResponse(CamelModel):
    items: List[AssetReturn]
    total: int
    page: int
    size: int
    pages: int
