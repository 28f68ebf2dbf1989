import enum
from datetime import datetime
from typing import Optional, List

from pydantic import Field

from assetdesk.schemas.common import CamelModel


class AssetStatus(str, enum.Enum):
    IN_STORAGE = "Di Gudang"
    IN_USE = "Digunakan"
    DAMAGED = "Rusak"
    UNDER_REPAIR = "Dalam Perbaikan"
    OUT_FOR_REPAIR = "Sedang Diperbaiki Pihak Luar"
    DECOMMISSIONED = "Diberhentikan"
    AWAITING_RETURN = "Menunggu Pengembalian"


class AssetCondition(str, enum.Enum):
    BRAND_NEW = "Baru"
    GOOD = "Baik"
    USED_OKAY = "Bekas Layak Pakai"
    MINOR_DAMAGE = "Rusak Ringan"
    MAJOR_DAMAGE = "Rusak Berat"
    FOR_PARTS = "Kanibalisasi"


class Asset(CamelModel):
    id: str
    name: str
    brand: str
    category: Optional[str] = None
    type: Optional[str] = None
    serial_number: Optional[str] = None
    mac_address: Optional[str] = None
    status: AssetStatus = AssetStatus.IN_STORAGE
    condition: AssetCondition = AssetCondition.GOOD
    location: Optional[str] = None
    current_user: Optional[str] = None
    registration_date: Optional[datetime] = None
    recorded_by: Optional[str] = None
    notes: Optional[str] = None
    wo_ro_int_number: Optional[str] = None
    last_modified_date: Optional[datetime] = None
    last_modified_by: Optional[str] = None


class AssetCreate(CamelModel):
    id: Optional[str] = Field(None, min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    brand: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = None
    type: Optional[str] = None
    serial_number: Optional[str] = None
    mac_address: Optional[str] = None
    condition: AssetCondition = AssetCondition.GOOD
    location: Optional[str] = None
    notes: Optional[str] = None


class AssetUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    brand: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = None
    type: Optional[str] = None
    serial_number: Optional[str] = None
    mac_address: Optional[str] = None
    status: Optional[AssetStatus] = None
    condition: Optional[AssetCondition] = None
    location: Optional[str] = None
    current_user: Optional[str] = None
    notes: Optional[str] = None


class AssetListResponse(CamelModel):
    items: List[Asset]
    total: int
    page: int
    size: int
    pages: int
