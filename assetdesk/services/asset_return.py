"""Return documents: a borrower files one per asset, an admin approves or rejects it."""
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from assetdesk.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from assetdesk.core.logging import get_logger
from assetdesk.core.permissions import LOAN_RETURN
from assetdesk.schemas.actor import Actor
from assetdesk.schemas.asset import AssetStatus
from assetdesk.schemas.asset_return import AssetReturn, AssetReturnCreate, AssetReturnStatus
from assetdesk.services.document_number import generate_document_number
from assetdesk.services.loan import (
    RETURNABLE_STATUSES,
    reconcile_returned_assets,
    return_assets_to_storage,
)
from assetdesk.stores.registry import Stores

logger = get_logger("services.asset_return")


def _require_pending(stores: Stores, return_id: str) -> AssetReturn:
    document = stores.returns.get(return_id)
    if document is None:
        raise NotFoundError(f"Return document {return_id} not found")
    if document.status != AssetReturnStatus.PENDING_APPROVAL:
        raise InvalidTransitionError(
            f"Return document {return_id} was already processed (status: '{document.status.value}')"
        )
    loan = stores.loan_requests.get(document.loan_request_id)
    if loan is not None and document.asset_id in loan.returned_asset_ids:
        raise InvalidTransitionError(
            f"Asset {document.asset_id} was already returned under loan request {loan.id}"
        )
    return document


async def submit_return(stores: Stores, data: AssetReturnCreate, actor: Actor) -> AssetReturn:
    loan = stores.loan_requests.get(data.loan_request_id)
    if loan is None:
        raise NotFoundError(f"Loan request {data.loan_request_id} not found")
    if actor.name != loan.requester and not actor.can(LOAN_RETURN):
        raise PermissionError("You can only return assets from your own loan requests")
    if loan.status not in RETURNABLE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot return assets of a loan request in status '{loan.status.value}'"
        )
    if data.asset_id not in loan.outstanding_asset_ids():
        raise ValidationError(
            f"Asset {data.asset_id} is not on loan under request {loan.id}"
        )
    if any(
        r.asset_id == data.asset_id and r.status == AssetReturnStatus.PENDING_APPROVAL
        for r in stores.returns.items
    ):
        raise ValidationError(f"A return for asset {data.asset_id} is already awaiting approval")

    asset = stores.assets.get(data.asset_id)
    if asset is None:
        raise NotFoundError(f"Asset {data.asset_id} not found")

    return_date = data.return_date or datetime.now(timezone.utc).date()
    document = AssetReturn(
        id=stores.returns.next_id(),
        doc_number=generate_document_number(
            "RET", (r.doc_number for r in stores.returns.items), return_date
        ),
        return_date=return_date,
        loan_request_id=loan.id,
        asset_id=asset.id,
        asset_name=asset.name,
        returned_by=actor.name,
        returned_condition=data.returned_condition,
        notes=data.notes,
    )
    await stores.returns.add(document)
    await stores.assets.update(asset.id, status=AssetStatus.AWAITING_RETURN)

    logger.info(
        f"Return submitted: id={document.id} doc={document.doc_number} "
        f"loan={loan.id} asset={asset.id}"
    )
    return document


async def approve_return(stores: Stores, return_id: str, approver: str) -> AssetReturn:
    """Accept the return: the asset goes back to storage and the loan request is reconciled."""
    document = _require_pending(stores, return_id)

    document = await stores.returns.update(
        document.id,
        status=AssetReturnStatus.APPROVED,
        approved_by=approver,
        approval_date=datetime.now(timezone.utc),
        received_by=approver,
    )

    loan = stores.loan_requests.get(document.loan_request_id)
    if loan is not None:
        await reconcile_returned_assets(stores, loan, [document.asset_id])

    await return_assets_to_storage(
        stores, [document.asset_id], approver, condition=document.returned_condition
    )
    logger.info(f"Return approved: id={document.id} asset={document.asset_id} by={approver}")
    return document


async def reject_return(stores: Stores, return_id: str, approver: str, reason: str) -> AssetReturn:
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")
    document = _require_pending(stores, return_id)

    document = await stores.returns.update(
        document.id,
        status=AssetReturnStatus.REJECTED,
        rejected_by=approver,
        rejection_date=datetime.now(timezone.utc),
        rejection_reason=reason.strip(),
    )
    await stores.assets.update(document.asset_id, status=AssetStatus.IN_USE)

    logger.info(f"Return rejected: id={document.id} asset={document.asset_id} by={approver}")
    return document


def get_returns(
    stores: Stores,
    page: int = 1,
    size: int = 20,
    status: Optional[AssetReturnStatus] = None,
    loan_request_id: Optional[str] = None,
) -> Tuple[List[AssetReturn], int]:
    returns = stores.returns.items
    if status:
        returns = [r for r in returns if r.status == status]
    if loan_request_id:
        returns = [r for r in returns if r.loan_request_id == loan_request_id]
    offset = (page - 1) * size
    return returns[offset:offset + size], len(returns)
