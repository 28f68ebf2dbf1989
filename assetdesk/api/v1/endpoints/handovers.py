from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from assetdesk.api.v1.dependencies import (
    DOMAIN_ERRORS,
    StoresDep,
    http_error,
    require_permission,
)
from assetdesk.core.permissions import ASSETS_HANDOVER, ASSETS_VIEW
from assetdesk.schemas.actor import Actor
from assetdesk.schemas.handover import Handover, HandoverCreate, HandoverListResponse
from assetdesk.services.handover import create_handover, get_handover_by_id, get_handovers
from assetdesk.services.loan import calculate_pages

router = APIRouter(prefix="/handovers", tags=["Handovers"])

HandoverViewer = Annotated[Actor, Depends(require_permission(ASSETS_VIEW, ASSETS_HANDOVER))]
HandoverIssuer = Annotated[Actor, Depends(require_permission(ASSETS_HANDOVER))]


@router.get(
    "",
    response_model=HandoverListResponse,
    summary="List handovers",
    responses={
        200: {"description": "Paginated list of handover documents"},
        401: {"description": "Not authenticated"},
    },
)
async def list_handovers(
    actor: HandoverViewer,
    stores: StoresDep,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    search: str | None = None,
):
    """List handover documents, newest first."""
    handovers, total = get_handovers(stores, page=page, size=size, search=search)
    return HandoverListResponse(
        items=handovers, total=total, page=page, size=size, pages=calculate_pages(total, size)
    )


@router.get(
    "/{handover_id}",
    response_model=Handover,
    summary="Get handover details",
    responses={
        200: {"description": "Handover document"},
        401: {"description": "Not authenticated"},
        404: {"description": "Handover not found"},
    },
)
async def get_handover_endpoint(handover_id: str, actor: HandoverViewer, stores: StoresDep):
    """Get a single handover document."""
    handover = get_handover_by_id(stores, handover_id)
    if not handover:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Handover not found")
    return handover


@router.post(
    "",
    response_model=Handover,
    status_code=status.HTTP_201_CREATED,
    summary="Record a handover",
    description=(
        "Record the physical transfer of assets. Every listed asset is set in use by the receiver. "
        "When `woRoIntNumber` references an approved loan request (`LREQ-...`), the items must be "
        "assets assigned to it and the request moves to on-loan."
    ),
    responses={
        201: {"description": "Handover recorded"},
        400: {"description": "Items do not match the loan request, or the request is not approved"},
        401: {"description": "Not authenticated"},
        403: {"description": "Missing assets:handover permission"},
        404: {"description": "Loan request or asset not found"},
        409: {"description": "An asset is not in storage"},
        503: {"description": "A write failed; earlier writes are kept"},
    },
)
async def create_handover_endpoint(data: HandoverCreate, actor: HandoverIssuer, stores: StoresDep):
    """Record a handover document."""
    try:
        return await create_handover(stores, data)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
