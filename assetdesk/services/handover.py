from datetime import datetime, timezone
from typing import List, Optional, Tuple

from assetdesk.core.exceptions import AvailabilityError, InvalidTransitionError, NotFoundError, ValidationError
from assetdesk.core.logging import get_logger
from assetdesk.schemas.asset import AssetStatus
from assetdesk.schemas.handover import Handover, HandoverCreate, HandoverItem
from assetdesk.schemas.loan import LoanRequest, LoanRequestStatus
from assetdesk.services.document_number import generate_document_number
from assetdesk.services.loan import complete_handover, reserved_by_other_loans
from assetdesk.stores.registry import Stores

logger = get_logger("services.handover")

LOAN_REFERENCE_PREFIX = "LREQ-"


def _linked_loan(stores: Stores, data: HandoverCreate) -> Optional[LoanRequest]:
    reference = data.wo_ro_int_number or ""
    if not reference.startswith(LOAN_REFERENCE_PREFIX):
        return None

    loan = stores.loan_requests.get(reference)
    if loan is None:
        raise NotFoundError(f"Loan request {reference} not found")
    if loan.status != LoanRequestStatus.APPROVED:
        raise InvalidTransitionError(
            f"Only approved loan requests can be handed over (status: '{loan.status.value}')"
        )

    assigned = set(loan.all_assigned_asset_ids())
    for item in data.items:
        if not item.asset_id:
            raise ValidationError(f"Handover item '{item.item_name}' has no asset for loan request {loan.id}")
        if item.asset_id not in assigned:
            raise ValidationError(f"Asset {item.asset_id} is not assigned to loan request {loan.id}")

    listed = {item.asset_id for item in data.items}
    missing = [a for a in loan.all_assigned_asset_ids() if a not in listed]
    if missing:
        raise ValidationError(
            f"Handover for loan request {loan.id} must include every assigned asset; "
            f"missing {', '.join(missing)}"
        )
    return loan


async def create_handover(stores: Stores, data: HandoverCreate) -> Handover:
    """Record a handover, put its assets in use and, for a loan request, mark it on loan."""
    loan = _linked_loan(stores, data)

    asset_ids = [item.asset_id for item in data.items if item.asset_id]
    if len(set(asset_ids)) != len(asset_ids):
        raise ValidationError("The same asset is listed more than once")
    # Assets promised to an approved request stay with that request
    reserved = reserved_by_other_loans(stores, exclude_id=loan.id if loan else None)
    for asset_id in asset_ids:
        asset = stores.assets.get(asset_id)
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found")
        if asset.status != AssetStatus.IN_STORAGE:
            raise AvailabilityError(
                f"Asset {asset_id} is not in storage (status: '{asset.status.value}')",
                asset_id=asset_id,
            )
        if asset_id in reserved:
            raise AvailabilityError(
                f"Asset {asset_id} is reserved by another approved loan request",
                asset_id=asset_id,
            )

    doc_number = data.doc_number or generate_document_number(
        "HO-RO" if loan else "HO",
        (h.doc_number for h in stores.handovers.items),
        data.handover_date,
    )
    handover = Handover(
        id=stores.handovers.next_id(),
        doc_number=doc_number,
        handover_date=data.handover_date,
        menyerahkan=data.menyerahkan,
        penerima=data.penerima,
        mengetahui=data.mengetahui,
        wo_ro_int_number=data.wo_ro_int_number,
        items=[
            HandoverItem(id=position, **item.model_dump())
            for position, item in enumerate(data.items, start=1)
        ],
    )
    await stores.handovers.add(handover)

    now = datetime.now(timezone.utc)
    for asset_id in asset_ids:
        await stores.assets.update(
            asset_id,
            status=AssetStatus.IN_USE,
            current_user=data.penerima,
            location=f"Digunakan oleh {data.penerima}",
            wo_ro_int_number=data.wo_ro_int_number,
            last_modified_by=data.menyerahkan,
            last_modified_date=now,
        )

    if loan is not None:
        await complete_handover(stores, loan.id, handover.id)

    logger.info(
        f"Handover created: id={handover.id} doc={handover.doc_number} "
        f"receiver={data.penerima} assets={len(asset_ids)}"
    )
    return handover


def get_handovers(
    stores: Stores,
    page: int = 1,
    size: int = 20,
    search: Optional[str] = None,
) -> Tuple[List[Handover], int]:
    handovers = stores.handovers.items
    if search:
        needle = search.strip().lower()
        handovers = [
            h for h in handovers
            if needle in h.doc_number.lower()
            or needle in h.penerima.lower()
            or needle in h.menyerahkan.lower()
            or needle in (h.wo_ro_int_number or "").lower()
        ]
    offset = (page - 1) * size
    return handovers[offset:offset + size], len(handovers)


def get_handover_by_id(stores: Stores, handover_id: str) -> Optional[Handover]:
    return stores.handovers.get(handover_id)
