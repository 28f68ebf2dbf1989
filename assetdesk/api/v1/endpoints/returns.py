from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from assetdesk.api.v1.dependencies import (
    DOMAIN_ERRORS,
    CurrentActor,
    StoresDep,
    http_error,
    require_permission,
)
from assetdesk.core.permissions import LOAN_RETURN, LOAN_VIEW_ALL
from assetdesk.schemas.actor import Actor
from assetdesk.schemas.asset_return import (
    AssetReturn,
    AssetReturnCreate,
    AssetReturnListResponse,
    AssetReturnStatus,
    RejectReturnRequest,
)
from assetdesk.services.asset_return import approve_return, get_returns, reject_return, submit_return
from assetdesk.services.loan import calculate_pages

router = APIRouter(prefix="/returns", tags=["Returns"])

ReturnAdmin = Annotated[Actor, Depends(require_permission(LOAN_RETURN))]


@router.post(
    "",
    response_model=AssetReturn,
    status_code=status.HTTP_201_CREATED,
    summary="File a return document",
    description="File a return for one loaned asset. The asset waits for approval until an admin processes the document.",
    responses={
        201: {"description": "Return document filed"},
        400: {"description": "Asset is not on loan under this request"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not the borrower"},
        404: {"description": "Loan request or asset not found"},
    },
)
async def submit_return_endpoint(data: AssetReturnCreate, actor: CurrentActor, stores: StoresDep):
    """File a return document (borrower or return admin)."""
    try:
        return await submit_return(stores, data, actor)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get(
    "",
    response_model=AssetReturnListResponse,
    summary="List return documents",
    responses={
        200: {"description": "Paginated list of return documents"},
        401: {"description": "Not authenticated"},
    },
)
async def list_returns(
    actor: Annotated[Actor, Depends(require_permission(LOAN_RETURN, LOAN_VIEW_ALL))],
    stores: StoresDep,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    return_status: AssetReturnStatus | None = Query(None, alias="status"),
    loan_request_id: str | None = Query(None, alias="loanRequestId"),
):
    """List return documents."""
    returns, total = get_returns(
        stores, page=page, size=size, status=return_status, loan_request_id=loan_request_id
    )
    return AssetReturnListResponse(
        items=returns, total=total, page=page, size=size, pages=calculate_pages(total, size)
    )


@router.post(
    "/{return_id}/approve",
    response_model=AssetReturn,
    summary="Approve a return",
    responses={
        200: {"description": "Return approved, asset back in storage"},
        400: {"description": "Document already processed"},
        404: {"description": "Return document not found"},
    },
)
async def approve_return_endpoint(return_id: str, actor: ReturnAdmin, stores: StoresDep):
    """Approve a pending return document."""
    try:
        return await approve_return(stores, return_id, approver=actor.name)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post(
    "/{return_id}/reject",
    response_model=AssetReturn,
    summary="Reject a return",
    responses={
        200: {"description": "Return rejected, asset stays in use"},
        400: {"description": "Missing reason or document already processed"},
        404: {"description": "Return document not found"},
    },
)
async def reject_return_endpoint(
    return_id: str, data: RejectReturnRequest, actor: ReturnAdmin, stores: StoresDep
):
    """Reject a pending return document."""
    try:
        return await reject_return(stores, return_id, approver=actor.name, reason=data.reason)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
