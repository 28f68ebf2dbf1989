from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from assetdesk.api.v1.dependencies import (
    DOMAIN_ERRORS,
    StoresDep,
    http_error,
    require_permission,
)
from assetdesk.core.permissions import ASSETS_CREATE, ASSETS_EDIT, ASSETS_VIEW
from assetdesk.schemas.actor import Actor
from assetdesk.schemas.asset import Asset, AssetCreate, AssetListResponse, AssetStatus, AssetUpdate
from assetdesk.services.asset import get_asset_by_id, get_assets, register_asset, update_asset
from assetdesk.services.loan import calculate_pages

router = APIRouter(prefix="/assets", tags=["Assets"])

AssetViewer = Annotated[Actor, Depends(require_permission(ASSETS_VIEW))]
AssetCreator = Annotated[Actor, Depends(require_permission(ASSETS_CREATE))]
AssetEditor = Annotated[Actor, Depends(require_permission(ASSETS_EDIT))]


@router.get(
    "",
    response_model=AssetListResponse,
    summary="List assets",
    description="Retrieve a paginated list of assets with optional filters for status, exact name and brand, and free-text search.",
    responses={
        200: {"description": "Paginated list of assets"},
        401: {"description": "Not authenticated"},
        403: {"description": "Missing assets:view permission"},
    },
)
async def list_assets(
    actor: AssetViewer,
    stores: StoresDep,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    asset_status: AssetStatus | None = Query(None, alias="status"),
    name: str | None = None,
    brand: str | None = None,
    search: str | None = None,
):
    """List assets with optional filters."""
    assets, total = get_assets(
        stores, page=page, size=size, status=asset_status,
        name=name, brand=brand, search=search,
    )
    return AssetListResponse(
        items=assets, total=total, page=page, size=size, pages=calculate_pages(total, size)
    )


@router.post(
    "",
    response_model=Asset,
    status_code=status.HTTP_201_CREATED,
    summary="Register an asset",
    description="Register a new asset. It starts in storage; an id is generated when none is given.",
    responses={
        201: {"description": "Asset registered"},
        400: {"description": "Duplicate id or serial number"},
        401: {"description": "Not authenticated"},
        403: {"description": "Missing assets:create permission"},
        503: {"description": "Asset could not be saved"},
    },
)
async def create_asset_endpoint(data: AssetCreate, actor: AssetCreator, stores: StoresDep):
    """Register a new asset."""
    try:
        return await register_asset(stores, data, recorded_by=actor.name)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get(
    "/{asset_id}",
    response_model=Asset,
    summary="Get asset details",
    responses={
        200: {"description": "Asset details"},
        401: {"description": "Not authenticated"},
        404: {"description": "Asset not found"},
    },
)
async def get_asset_endpoint(asset_id: str, actor: AssetViewer, stores: StoresDep):
    """Get a single asset."""
    asset = get_asset_by_id(stores, asset_id)
    if not asset:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    return asset


@router.patch(
    "/{asset_id}",
    response_model=Asset,
    summary="Update an asset",
    description="Partially update an asset record. Only the fields present in the body change.",
    responses={
        200: {"description": "Asset updated"},
        401: {"description": "Not authenticated"},
        403: {"description": "Missing assets:edit permission"},
        404: {"description": "Asset not found"},
        503: {"description": "Asset could not be saved"},
    },
)
async def update_asset_endpoint(
    asset_id: str, data: AssetUpdate, actor: AssetEditor, stores: StoresDep
):
    """Update an asset."""
    try:
        return await update_asset(stores, asset_id, data, modified_by=actor.name)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
