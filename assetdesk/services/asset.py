from datetime import datetime, timezone
from typing import List, Optional, Tuple

from assetdesk.core.config import settings
from assetdesk.core.exceptions import NotFoundError, ValidationError
from assetdesk.core.logging import get_logger
from assetdesk.schemas.asset import Asset, AssetCreate, AssetStatus, AssetUpdate
from assetdesk.stores.asset import stock_key
from assetdesk.stores.registry import Stores

logger = get_logger("services.asset")


async def register_asset(stores: Stores, data: AssetCreate, recorded_by: str) -> Asset:
    """Register a new asset in storage."""
    asset_id = data.id or stores.assets.next_id()
    if stores.assets.get(asset_id) is not None:
        raise ValidationError(f"Asset with id {asset_id} already exists")
    if data.serial_number and any(
        a.serial_number == data.serial_number for a in stores.assets.items
    ):
        raise ValidationError(f"Asset with serial number {data.serial_number} already exists")

    now = datetime.now(timezone.utc)
    asset = Asset(
        **data.model_dump(exclude={"id", "location"}),
        id=asset_id,
        status=AssetStatus.IN_STORAGE,
        location=data.location or settings.STORAGE_LOCATION,
        registration_date=now,
        recorded_by=recorded_by,
        last_modified_date=now,
        last_modified_by=recorded_by,
    )
    await stores.assets.add(asset)
    logger.info(f"Asset registered: id={asset.id} name={asset.name} brand={asset.brand}")
    return asset


async def update_asset(stores: Stores, asset_id: str, data: AssetUpdate, modified_by: str) -> Asset:
    if stores.assets.get(asset_id) is None:
        raise NotFoundError(f"Asset {asset_id} not found")

    changes = data.model_dump(exclude_unset=True)
    asset = await stores.assets.update(
        asset_id,
        **changes,
        last_modified_by=modified_by,
        last_modified_date=datetime.now(timezone.utc),
    )
    logger.info(f"Asset updated: id={asset_id} by={modified_by}")
    return asset


def get_assets(
    stores: Stores,
    page: int = 1,
    size: int = 20,
    status: Optional[AssetStatus] = None,
    name: Optional[str] = None,
    brand: Optional[str] = None,
    search: Optional[str] = None,
) -> Tuple[List[Asset], int]:
    """List assets with filtering and pagination."""
    assets = stores.assets.items
    if status:
        assets = [a for a in assets if a.status == status]
    if name:
        assets = [a for a in assets if a.name.strip().lower() == name.strip().lower()]
    if brand:
        assets = [a for a in assets if a.brand.strip().lower() == brand.strip().lower()]
    if search:
        needle = search.strip().lower()
        assets = [
            a for a in assets
            if needle in a.id.lower()
            or needle in a.name.lower()
            or needle in a.brand.lower()
            or needle in (a.serial_number or "").lower()
        ]
    offset = (page - 1) * size
    return assets[offset:offset + size], len(assets)


def get_asset_by_id(stores: Stores, asset_id: str) -> Optional[Asset]:
    return stores.assets.get(asset_id)


def stock_in_storage(stores: Stores, name: str, brand: str) -> int:
    return stores.assets.available_in_storage(name, brand)
