import enum
from datetime import date
from typing import List, Optional

from pydantic import Field

from assetdesk.schemas.common import CamelModel


class HandoverStatus(str, enum.Enum):
    IN_PROGRESS = "Diproses"
    COMPLETED = "Selesai"


class HandoverItem(CamelModel):
    id: int
    asset_id: Optional[str] = None
    item_name: str
    item_type_brand: str
    condition_notes: str = ""
    quantity: int = 1
    checked: bool = True


class HandoverItemCreate(CamelModel):
    asset_id: Optional[str] = None
    item_name: str = Field(..., min_length=1)
    item_type_brand: str
    condition_notes: str = ""
    quantity: int = Field(1, ge=1)


class HandoverCreate(CamelModel):
    doc_number: Optional[str] = None
    handover_date: date
    menyerahkan: str = Field(..., min_length=1)
    penerima: str = Field(..., min_length=1)
    mengetahui: str = ""
    wo_ro_int_number: Optional[str] = None
    items: List[HandoverItemCreate] = Field(..., min_length=1)


class Handover(CamelModel):
    id: str
    doc_number: str
    handover_date: date
    menyerahkan: str
    penerima: str
    mengetahui: str = ""
    wo_ro_int_number: Optional[str] = None
    items: List[HandoverItem]
    status: HandoverStatus = HandoverStatus.COMPLETED


class HandoverListResponse(CamelModel):
    items: List[Handover]
    total: int
    page: int
    size: int
    pages: int
