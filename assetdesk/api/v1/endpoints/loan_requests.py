from datetime import date
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from assetdesk.api.v1.dependencies import (
    DOMAIN_ERRORS,
    CurrentActor,
    StoresDep,
    bind_loan_request,
    http_error,
    require_permission,
)
from assetdesk.core.permissions import (
    ASSETS_HANDOVER,
    LOAN_APPROVE,
    LOAN_CREATE,
    LOAN_RETURN,
    LOAN_VIEW_ALL,
    LOAN_VIEW_OWN,
)
from assetdesk.schemas.actor import Actor
from assetdesk.schemas.asset import Asset
from assetdesk.schemas.handover import HandoverCreate
from assetdesk.schemas.loan import (
    AssignmentDraft,
    ConfirmReturnRequest,
    ItemCandidates,
    LoanRequest,
    LoanRequestCreate,
    LoanRequestListResponse,
    LoanRequestStatus,
    RejectLoanRequest,
    ScanRequest,
)
from assetdesk.services.loan import (
    assign_and_approve,
    build_handover_from_loan,
    calculate_pages,
    confirm_return,
    create_loan_request,
    get_loan_request_by_id,
    get_loan_requests,
    initiate_return,
    open_assignment_panel,
    reject_loan_request,
)
from assetdesk.services.return_selection import ReturnSelection

router = APIRouter(prefix="/loan-requests", tags=["Loan Requests"])

Viewer = Annotated[Actor, Depends(require_permission(LOAN_VIEW_OWN, LOAN_VIEW_ALL))]
Requester = Annotated[Actor, Depends(require_permission(LOAN_CREATE))]
Approver = Annotated[Actor, Depends(require_permission(LOAN_APPROVE))]
ReturnAdmin = Annotated[Actor, Depends(require_permission(LOAN_RETURN))]
HandoverIssuer = Annotated[Actor, Depends(require_permission(ASSETS_HANDOVER))]


def _visible_loan(stores, loan_id: str, actor: Actor) -> LoanRequest:
    loan = get_loan_request_by_id(stores, loan_id)
    if not loan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Loan request not found")
    # Without view-all, only the requester sees a request
    if not actor.can(LOAN_VIEW_ALL) and loan.requester != actor.name:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return loan


@router.post(
    "",
    response_model=LoanRequest,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a loan request",
    description="Request to borrow one or more items. The caller becomes the requester; division defaults to the token's division.",
    responses={
        201: {"description": "Loan request created"},
        400: {"description": "Invalid items"},
        401: {"description": "Not authenticated"},
        403: {"description": "Missing loan-requests:create permission"},
        422: {"description": "Validation error"},
    },
)
async def create_loan_request_endpoint(data: LoanRequestCreate, actor: Requester, stores: StoresDep):
    """Submit a new loan request."""
    try:
        return await create_loan_request(
            stores,
            requester=actor.name,
            division=data.division or actor.division or "",
            items=data.items,
            notes=data.notes,
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get(
    "",
    response_model=LoanRequestListResponse,
    summary="List loan requests",
    description="Paginated list of loan requests, newest first. Callers without view-all permission see only their own.",
    responses={
        200: {"description": "Paginated list of loan requests"},
        401: {"description": "Not authenticated"},
    },
)
async def list_loan_requests(
    actor: Viewer,
    stores: StoresDep,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    requester: str | None = None,
    loan_status: LoanRequestStatus | None = Query(None, alias="status"),
    search: str | None = None,
):
    """List loan requests (filtered by permission)."""
    if not actor.can(LOAN_VIEW_ALL):
        requester = actor.name

    loans, total = get_loan_requests(
        stores, page=page, size=size, requester=requester, status=loan_status, search=search
    )
    return LoanRequestListResponse(
        items=loans, total=total, page=page, size=size, pages=calculate_pages(total, size)
    )


@router.get(
    "/{loan_id}",
    dependencies=[Depends(bind_loan_request)],
    response_model=LoanRequest,
    summary="Get loan request details",
    responses={
        200: {"description": "Loan request details"},
        401: {"description": "Not authenticated"},
        403: {"description": "Another user's request"},
        404: {"description": "Loan request not found"},
    },
)
async def get_loan_request_endpoint(loan_id: str, actor: Viewer, stores: StoresDep):
    """Get loan request details."""
    return _visible_loan(stores, loan_id, actor)


# ─── Review ──────────────────────────────────────────────────────


@router.get(
    "/{loan_id}/candidates",
    dependencies=[Depends(bind_loan_request)],
    response_model=List[ItemCandidates],
    summary="Candidate assets per item",
    description="For each item of a pending request, the in-storage assets of the same name and brand that no other approved request has reserved.",
    responses={
        200: {"description": "Candidates per item"},
        400: {"description": "Request is not pending"},
        404: {"description": "Loan request not found"},
    },
)
async def list_candidates(loan_id: str, actor: Approver, stores: StoresDep):
    """List assignable assets for every item."""
    try:
        panel = open_assignment_panel(stores, loan_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return [
        ItemCandidates(
            item_id=state.item.id,
            item_name=state.item.item_name,
            brand=state.item.brand,
            requested_quantity=state.requested_qty,
            candidates=panel.candidates(state.item.id),
        )
        for state in panel.items
    ]


@router.post(
    "/{loan_id}/scan",
    dependencies=[Depends(bind_loan_request)],
    response_model=Asset,
    summary="Resolve a scanned code",
    description=(
        "Resolve a scanned asset id or serial number for one item. `claimedAssetIds` are the assets "
        "the reviewer has already picked in this review; a claimed or unavailable asset is refused."
    ),
    responses={
        200: {"description": "The resolved asset"},
        400: {"description": "Unknown item or request not pending"},
        404: {"description": "Loan request not found"},
        409: {"description": "Asset unavailable, mismatched, or already claimed"},
    },
)
async def scan_asset(loan_id: str, data: ScanRequest, actor: Approver, stores: StoresDep):
    """Resolve a scanned code against the request's items."""
    try:
        panel = open_assignment_panel(stores, loan_id, claimed=data.claimed_asset_ids)
        asset_id = panel.scan_assign(data.item_id, data.code)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return stores.assets.get(asset_id)


@router.post(
    "/{loan_id}/assignment",
    dependencies=[Depends(bind_loan_request)],
    response_model=LoanRequest,
    summary="Assign assets and approve",
    description=(
        "Submit the review: per item the approved quantity, the reason when it is reduced, and one asset "
        "per approved unit. Items left out of the draft default to full approval. The request becomes approved; "
        "assets stay in storage until handover."
    ),
    responses={
        200: {"description": "Loan request approved"},
        400: {"description": "Missing reason, incomplete or duplicate assignment, or request not pending"},
        404: {"description": "Loan request not found"},
        409: {"description": "An asset is unavailable"},
        503: {"description": "Decision could not be saved"},
    },
)
async def submit_assignment(loan_id: str, draft: AssignmentDraft, actor: Approver, stores: StoresDep):
    """Validate the assignment draft and approve the request."""
    try:
        panel = open_assignment_panel(stores, loan_id)
        panel.apply_draft(draft)
        decision = panel.submit()
        return await assign_and_approve(stores, loan_id, decision, approver=actor.name)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post(
    "/{loan_id}/reject",
    dependencies=[Depends(bind_loan_request)],
    response_model=LoanRequest,
    summary="Reject a loan request",
    responses={
        200: {"description": "Loan request rejected"},
        400: {"description": "Missing reason or request not pending"},
        404: {"description": "Loan request not found"},
    },
)
async def reject_loan_request_endpoint(
    loan_id: str, data: RejectLoanRequest, actor: Approver, stores: StoresDep
):
    """Reject the whole loan request."""
    try:
        return await reject_loan_request(stores, loan_id, approver=actor.name, reason=data.reason)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


# ─── Handover and return ─────────────────────────────────────────


@router.get(
    "/{loan_id}/handover-draft",
    dependencies=[Depends(bind_loan_request)],
    response_model=HandoverCreate,
    summary="Prefilled handover for a loan request",
    description="Handover payload for an approved request, listing exactly its assigned assets. Nothing is saved.",
    responses={
        200: {"description": "Handover payload"},
        400: {"description": "Request is not approved"},
        404: {"description": "Loan request not found"},
    },
)
async def handover_draft(
    loan_id: str,
    actor: HandoverIssuer,
    stores: StoresDep,
    witness: str = "",
    handover_date: date | None = Query(None, alias="handoverDate"),
):
    """Build the handover document for an approved request."""
    try:
        return build_handover_from_loan(
            stores, loan_id, issuer=actor.name, witness=witness, handover_date=handover_date
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post(
    "/{loan_id}/initiate-return",
    dependencies=[Depends(bind_loan_request)],
    response_model=LoanRequest,
    summary="Start returning a loan",
    responses={
        200: {"description": "Loan request awaiting return"},
        400: {"description": "Request is not on loan"},
        403: {"description": "Not the requester"},
        404: {"description": "Loan request not found"},
    },
)
async def initiate_return_endpoint(loan_id: str, actor: CurrentActor, stores: StoresDep):
    """Announce the return of a loan (requester or return admin)."""
    try:
        return await initiate_return(stores, loan_id, actor)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get(
    "/{loan_id}/active-assets",
    dependencies=[Depends(bind_loan_request)],
    response_model=List[Asset],
    summary="Assets still on loan",
    responses={
        200: {"description": "Assigned assets not yet returned"},
        404: {"description": "Loan request not found"},
    },
)
async def list_active_assets(loan_id: str, actor: Viewer, stores: StoresDep):
    """List the assets of a request that are still out."""
    loan = _visible_loan(stores, loan_id, actor)
    selection = ReturnSelection(loan)
    return [
        asset
        for asset in (stores.assets.get(a) for a in selection.active_asset_ids)
        if asset is not None
    ]


@router.post(
    "/{loan_id}/confirm-return",
    dependencies=[Depends(bind_loan_request)],
    response_model=LoanRequest,
    summary="Confirm returned assets",
    description=(
        "Take back the listed assets, or every asset still on loan when `assetIds` is omitted. "
        "Assets already returned are ignored. The request closes once every assigned asset is back."
    ),
    responses={
        200: {"description": "Return recorded"},
        400: {"description": "Empty selection, foreign asset, or request not on loan"},
        404: {"description": "Loan request not found"},
        503: {"description": "A write failed; earlier writes are kept"},
    },
)
async def confirm_return_endpoint(
    loan_id: str, data: ConfirmReturnRequest, actor: ReturnAdmin, stores: StoresDep
):
    """Confirm the return of some or all loaned assets."""
    try:
        asset_ids = data.asset_ids
        if asset_ids is None:
            loan = get_loan_request_by_id(stores, loan_id)
            if not loan:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Loan request not found")
            asset_ids = ReturnSelection(loan).confirm()
        return await confirm_return(stores, loan_id, asset_ids, receiver=actor.name)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
