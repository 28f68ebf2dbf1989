import enum
import math
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from assetdesk.core.config import settings
from assetdesk.core.exceptions import (
    AvailabilityError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from assetdesk.core.logging import get_logger
from assetdesk.core.permissions import LOAN_RETURN
from assetdesk.schemas.actor import Actor
from assetdesk.schemas.asset import AssetCondition, AssetStatus
from assetdesk.schemas.asset_return import AssetReturn, AssetReturnStatus
from assetdesk.schemas.handover import Handover, HandoverCreate, HandoverItem, HandoverItemCreate
from assetdesk.schemas.loan import (
    ItemDecisionStatus,
    LoanDecision,
    LoanItem,
    LoanItemCreate,
    LoanRequest,
    LoanRequestStatus,
)
from assetdesk.services.assignment import AssignmentPanel, derive_item_status
from assetdesk.services.document_number import generate_document_number
from assetdesk.stores.asset import stock_key
from assetdesk.stores.registry import Stores

logger = get_logger("services.loan")


class LoanEvent(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    HAND_OVER = "hand over"
    MARK_OVERDUE = "mark overdue"
    INITIATE_RETURN = "initiate return for"
    COMPLETE_RETURN = "complete return for"


VALID_TRANSITIONS: Dict[LoanRequestStatus, List[LoanRequestStatus]] = {
    LoanRequestStatus.PENDING: [LoanRequestStatus.APPROVED, LoanRequestStatus.REJECTED],
    LoanRequestStatus.APPROVED: [LoanRequestStatus.ON_LOAN],
    LoanRequestStatus.ON_LOAN: [
        LoanRequestStatus.AWAITING_RETURN,
        LoanRequestStatus.OVERDUE,
        LoanRequestStatus.RETURNED,
    ],
    LoanRequestStatus.OVERDUE: [LoanRequestStatus.AWAITING_RETURN, LoanRequestStatus.RETURNED],
    LoanRequestStatus.AWAITING_RETURN: [LoanRequestStatus.RETURNED],
}

EVENT_TARGETS: Dict[LoanEvent, LoanRequestStatus] = {
    LoanEvent.APPROVE: LoanRequestStatus.APPROVED,
    LoanEvent.REJECT: LoanRequestStatus.REJECTED,
    LoanEvent.HAND_OVER: LoanRequestStatus.ON_LOAN,
    LoanEvent.MARK_OVERDUE: LoanRequestStatus.OVERDUE,
    LoanEvent.INITIATE_RETURN: LoanRequestStatus.AWAITING_RETURN,
    LoanEvent.COMPLETE_RETURN: LoanRequestStatus.RETURNED,
}

# Statuses in which loaned assets can come back
RETURNABLE_STATUSES = {
    LoanRequestStatus.ON_LOAN,
    LoanRequestStatus.OVERDUE,
    LoanRequestStatus.AWAITING_RETURN,
}


def next_status(current: LoanRequestStatus, event: LoanEvent) -> LoanRequestStatus:
    """Status reached by applying ``event`` to ``current``, or InvalidTransitionError."""
    target = EVENT_TARGETS[event]
    if target not in VALID_TRANSITIONS.get(current, []):
        raise InvalidTransitionError(
            f"Cannot {event.value} a loan request in status '{current.value}'"
        )
    return target


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_loan(stores: Stores, loan_id: str) -> LoanRequest:
    loan = stores.loan_requests.get(loan_id)
    if loan is None:
        raise NotFoundError(f"Loan request {loan_id} not found")
    return loan


# ─── Creation and review ─────────────────────────────────────────


async def create_loan_request(
    stores: Stores,
    requester: str,
    division: str,
    items: List[LoanItemCreate],
    notes: Optional[str] = None,
) -> LoanRequest:
    """Create a new PENDING loan request."""
    if not items:
        raise ValidationError("A loan request needs at least one item")

    loan_items: List[LoanItem] = []
    seen: Set[int] = set()
    for position, item in enumerate(items, start=1):
        item_id = item.id if item.id is not None else position
        if item_id in seen:
            raise ValidationError(f"Item id {item_id} is used more than once", item_id=item_id)
        seen.add(item_id)
        loan_items.append(
            LoanItem(
                id=item_id,
                item_name=item.item_name.strip(),
                brand=item.brand.strip(),
                quantity=item.quantity,
                return_date=item.return_date,
                keterangan=item.keterangan,
            )
        )

    loan = LoanRequest(
        id=stores.loan_requests.next_id(),
        requester=requester,
        division=division,
        request_date=_now(),
        status=LoanRequestStatus.PENDING,
        items=loan_items,
        notes=notes,
    )
    await stores.loan_requests.add(loan)

    logger.info(
        f"Loan request created: id={loan.id} requester={requester} items={len(loan_items)}"
    )
    return loan


def reserved_by_other_loans(stores: Stores, exclude_id: Optional[str] = None) -> Set[str]:
    """Assets promised to APPROVED requests that have not been handed over yet."""
    return {
        asset_id
        for loan in stores.loan_requests.items
        if loan.status == LoanRequestStatus.APPROVED and loan.id != exclude_id
        for asset_id in loan.all_assigned_asset_ids()
    }


def open_assignment_panel(
    stores: Stores, loan_id: str, claimed: Iterable[str] = ()
) -> AssignmentPanel:
    """Panel over the current assets. ``claimed`` are ids a client-side panel already holds."""
    loan = _require_loan(stores, loan_id)
    reserved = reserved_by_other_loans(stores, exclude_id=loan.id) | set(claimed)
    return AssignmentPanel(loan, stores.assets.items, reserved_elsewhere=reserved)


def _validate_decision(stores: Stores, loan: LoanRequest, decision: LoanDecision) -> None:
    """Check a decision against the request and the current asset store.

    The panel already enforces these rules; a decision posted directly
    over the API goes through the same checks here.
    """
    item_ids = {item.id for item in loan.items}
    for key in list(decision.item_statuses) + list(decision.assigned_asset_ids):
        if key not in item_ids:
            raise ValidationError(f"Item {key} is not part of loan request {loan.id}", item_id=key)

    reserved = reserved_by_other_loans(stores, exclude_id=loan.id)
    claimed_by: Dict[str, int] = {}
    any_approved = False

    for item in loan.items:
        entry = decision.item_statuses.get(item.id)
        approved = entry.approved_quantity if entry else item.quantity
        if approved > item.quantity:
            raise ValidationError(
                f"Approved quantity {approved} exceeds requested {item.quantity} "
                f"for item '{item.item_name}'",
                item_id=item.id,
            )
        if entry is not None:
            if entry.status != derive_item_status(approved, item.quantity):
                raise ValidationError(
                    f"Status '{entry.status.value}' does not match approved quantity "
                    f"{approved} of {item.quantity} for item '{item.item_name}'",
                    item_id=item.id,
                )
            if approved < item.quantity and not entry.reason.strip():
                raise ValidationError(
                    f"A reason is required for item '{item.item_name}': approved "
                    f"{approved} of {item.quantity}",
                    item_id=item.id,
                )

        asset_ids = decision.assigned_asset_ids.get(item.id, [])
        if approved == 0:
            if asset_ids:
                raise ValidationError(
                    f"Rejected item '{item.item_name}' cannot carry assigned assets",
                    item_id=item.id,
                )
            continue

        any_approved = True
        if len(asset_ids) != approved or any(not a for a in asset_ids):
            raise ValidationError(
                f"Incomplete assignment for item '{item.item_name}': "
                f"{len([a for a in asset_ids if a])} of {approved} asset(s) given",
                item_id=item.id,
            )
        if len(set(asset_ids)) != len(asset_ids):
            raise ValidationError(
                f"Duplicate assignment for item '{item.item_name}': the same asset appears twice",
                item_id=item.id,
            )

        key = stock_key(item.item_name, item.brand)
        for asset_id in asset_ids:
            holder = claimed_by.setdefault(asset_id, item.id)
            if holder != item.id:
                raise ValidationError(
                    f"Duplicate assignment for item '{item.item_name}': asset {asset_id} "
                    f"is already assigned to item {holder}",
                    item_id=item.id,
                )
            asset = stores.assets.get(asset_id)
            if asset is None:
                raise AvailabilityError(f"Asset {asset_id} not found", asset_id=asset_id)
            if asset.status != AssetStatus.IN_STORAGE:
                raise AvailabilityError(
                    f"Asset {asset_id} is not in storage (status: '{asset.status.value}')",
                    asset_id=asset_id,
                )
            if stock_key(asset.name, asset.brand) != key:
                raise AvailabilityError(
                    f"Asset {asset_id} does not match item '{item.item_name}' / {item.brand}",
                    asset_id=asset_id,
                )
            if asset_id in reserved:
                raise AvailabilityError(
                    f"Asset {asset_id} is already reserved by another approved loan request",
                    asset_id=asset_id,
                )

    if not any_approved:
        raise ValidationError(
            "Every item is rejected; reject the whole loan request instead"
        )


async def assign_and_approve(
    stores: Stores,
    loan_id: str,
    decision: LoanDecision,
    approver: str,
) -> LoanRequest:
    """Record the per-item decision and approve the request. Assets are not touched."""
    loan = _require_loan(stores, loan_id)
    new_status = next_status(loan.status, LoanEvent.APPROVE)
    _validate_decision(stores, loan, decision)

    assigned = {
        item_id: list(ids)
        for item_id, ids in decision.assigned_asset_ids.items()
        if ids
    }
    loan = await stores.loan_requests.update(
        loan.id,
        status=new_status,
        item_statuses=decision.item_statuses,
        assigned_asset_ids=assigned,
        approver=approver,
        approval_date=_now(),
    )

    partial = sum(
        1 for d in decision.item_statuses.values() if d.status != ItemDecisionStatus.APPROVED
    )
    logger.info(
        f"Loan request approved: id={loan.id} by={approver} "
        f"assets={len(loan.all_assigned_asset_ids())} reduced_items={partial}"
    )
    return loan


async def reject_loan_request(
    stores: Stores,
    loan_id: str,
    approver: str,
    reason: str,
) -> LoanRequest:
    """Reject the whole request."""
    loan = _require_loan(stores, loan_id)
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")
    new_status = next_status(loan.status, LoanEvent.REJECT)

    loan = await stores.loan_requests.update(
        loan.id,
        status=new_status,
        approver=approver,
        approval_date=_now(),
        rejection_reason=reason.strip(),
    )
    logger.info(f"Loan request rejected: id={loan.id} by={approver}")
    return loan


# ─── Handover ────────────────────────────────────────────────────


def build_handover_from_loan(
    stores: Stores,
    loan_id: str,
    issuer: str,
    witness: str = "",
    handover_date: Optional[date] = None,
) -> HandoverCreate:
    """Handover payload listing exactly the assets assigned to an approved request."""
    loan = _require_loan(stores, loan_id)
    if loan.status != LoanRequestStatus.APPROVED:
        raise InvalidTransitionError(
            f"Only approved loan requests can be handed over (status: '{loan.status.value}')"
        )

    handover_date = handover_date or _now().date()
    items: List[HandoverItemCreate] = []
    for item in loan.items:
        for asset_id in (loan.assigned_asset_ids or {}).get(item.id, []):
            asset = stores.assets.get(asset_id)
            items.append(
                HandoverItemCreate(
                    asset_id=asset_id,
                    item_name=asset.name if asset else item.item_name,
                    item_type_brand=asset.brand if asset else item.brand,
                    condition_notes=asset.condition.value if asset else "",
                    quantity=1,
                )
            )

    return HandoverCreate(
        doc_number=generate_document_number(
            "HO-RO", (h.doc_number for h in stores.handovers.items), handover_date
        ),
        handover_date=handover_date,
        menyerahkan=issuer,
        penerima=loan.requester,
        mengetahui=witness,
        wo_ro_int_number=loan.id,
        items=items,
    )


async def complete_handover(stores: Stores, loan_id: str, handover_id: str) -> LoanRequest:
    loan = _require_loan(stores, loan_id)
    new_status = next_status(loan.status, LoanEvent.HAND_OVER)
    loan = await stores.loan_requests.update(loan.id, status=new_status, handover_id=handover_id)
    logger.info(f"Loan request handed over: id={loan.id} handover={handover_id}")
    return loan


# ─── Return ──────────────────────────────────────────────────────


async def initiate_return(stores: Stores, loan_id: str, actor: Actor) -> LoanRequest:
    """Borrower announces the return. Assets stay in use until it is confirmed."""
    loan = _require_loan(stores, loan_id)
    if actor.name != loan.requester and not actor.can(LOAN_RETURN):
        raise PermissionError("You can only return your own loan requests")
    new_status = next_status(loan.status, LoanEvent.INITIATE_RETURN)

    loan = await stores.loan_requests.update(loan.id, status=new_status)
    logger.info(f"Loan return initiated: id={loan.id} by={actor.name}")
    return loan


async def confirm_return(
    stores: Stores,
    loan_id: str,
    asset_ids: Iterable[str],
    receiver: str,
) -> LoanRequest:
    """Take back some or all loaned assets.

    Writes, in order: a return handover document, the loan request, each
    returned asset, then any return document still pending for those
    assets. Ids already returned are skipped; when nothing
    new remains the request is returned as-is without any write.
    """
    loan = _require_loan(stores, loan_id)
    requested = list(dict.fromkeys(a for a in asset_ids if a))
    if not requested:
        raise ValidationError("Select at least one asset to return")

    assigned = set(loan.all_assigned_asset_ids())
    foreign = [a for a in requested if a not in assigned]
    if foreign:
        raise ValidationError(
            f"Asset(s) {', '.join(foreign)} are not assigned to loan request {loan.id}"
        )

    already = set(loan.returned_asset_ids)
    new_ids = [a for a in requested if a not in already]
    if not new_ids:
        logger.info(f"Loan return confirm skipped: id={loan.id} nothing new to return")
        return loan
    if loan.status not in RETURNABLE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot confirm a return for a loan request in status '{loan.status.value}'"
        )

    await record_return_handover(stores, loan, new_ids, receiver)
    loan = await reconcile_returned_assets(stores, loan, new_ids)
    await return_assets_to_storage(stores, new_ids, receiver)
    await settle_pending_returns(stores, loan.id, new_ids, receiver)

    logger.info(
        f"Loan return confirmed: id={loan.id} returned={new_ids} by={receiver} "
        f"status={loan.status.value}"
    )
    return loan


async def record_return_handover(
    stores: Stores,
    loan: LoanRequest,
    asset_ids: List[str],
    receiver: str,
) -> Handover:
    today = _now().date()
    items: List[HandoverItem] = []
    for position, asset_id in enumerate(asset_ids, start=1):
        asset = stores.assets.get(asset_id)
        items.append(
            HandoverItem(
                id=position,
                asset_id=asset_id,
                item_name=asset.name if asset else asset_id,
                item_type_brand=asset.brand if asset else "",
                condition_notes=asset.condition.value if asset else "",
                quantity=1,
            )
        )

    handover = Handover(
        id=stores.handovers.next_id(),
        doc_number=generate_document_number(
            "HO-RET", (h.doc_number for h in stores.handovers.items), today
        ),
        handover_date=today,
        menyerahkan=loan.requester,
        penerima=receiver,
        wo_ro_int_number=loan.id,
        items=items,
    )
    await stores.handovers.add(handover)
    logger.info(f"Return handover recorded: id={handover.id} doc={handover.doc_number}")
    return handover


async def settle_pending_returns(
    stores: Stores,
    loan_id: str,
    asset_ids: List[str],
    receiver: str,
) -> List[AssetReturn]:
    """Approve pending return documents for assets that were taken back directly."""
    returned = set(asset_ids)
    pending = [
        r for r in stores.returns.items
        if r.loan_request_id == loan_id
        and r.asset_id in returned
        and r.status == AssetReturnStatus.PENDING_APPROVAL
    ]
    settled: List[AssetReturn] = []
    for document in pending:
        settled.append(
            await stores.returns.update(
                document.id,
                status=AssetReturnStatus.APPROVED,
                approved_by=receiver,
                approval_date=_now(),
                received_by=receiver,
            )
        )
        logger.info(f"Return document settled on confirm: id={document.id} asset={document.asset_id}")
    return settled


async def reconcile_returned_assets(
    stores: Stores,
    loan: LoanRequest,
    asset_ids: List[str],
) -> LoanRequest:
    """Add ``asset_ids`` to the request's returned set, closing it once everything is back."""
    returned = list(loan.returned_asset_ids)
    returned.extend(a for a in asset_ids if a not in returned)

    changes = {"returned_asset_ids": returned}
    outstanding = [a for a in loan.all_assigned_asset_ids() if a not in set(returned)]
    if not outstanding:
        changes["status"] = next_status(loan.status, LoanEvent.COMPLETE_RETURN)
        changes["actual_return_date"] = _now()

    return await stores.loan_requests.update(loan.id, **changes)


async def return_assets_to_storage(
    stores: Stores,
    asset_ids: List[str],
    actor_name: str,
    condition: Optional[AssetCondition] = None,
) -> None:
    for asset_id in asset_ids:
        asset = stores.assets.get(asset_id)
        if asset is None:
            logger.warning(f"Returned asset not found in store: id={asset_id}")
            continue
        changes = {
            "status": AssetStatus.DAMAGED if asset.status == AssetStatus.DAMAGED else AssetStatus.IN_STORAGE,
            "current_user": None,
            "location": settings.STORAGE_LOCATION,
            "last_modified_by": actor_name,
            "last_modified_date": _now(),
        }
        if condition is not None:
            changes["condition"] = condition
        await stores.assets.update(asset_id, **changes)


async def mark_overdue(stores: Stores, loan_id: str) -> LoanRequest:
    loan = _require_loan(stores, loan_id)
    new_status = next_status(loan.status, LoanEvent.MARK_OVERDUE)
    loan = await stores.loan_requests.update(loan.id, status=new_status)
    logger.info(f"Loan request marked overdue: id={loan.id} requester={loan.requester}")
    return loan


# ─── Queries ─────────────────────────────────────────────────────


def get_loan_requests(
    stores: Stores,
    page: int = 1,
    size: int = 20,
    requester: Optional[str] = None,
    status: Optional[LoanRequestStatus] = None,
    search: Optional[str] = None,
) -> Tuple[List[LoanRequest], int]:
    """List loan requests, newest first, with filtering and pagination."""
    loans = stores.loan_requests.items
    if requester:
        loans = [l for l in loans if l.requester == requester]
    if status:
        loans = [l for l in loans if l.status == status]
    if search:
        needle = search.strip().lower()
        loans = [
            l for l in loans
            if needle in l.id.lower()
            or needle in l.requester.lower()
            or needle in l.division.lower()
            or any(needle in i.item_name.lower() for i in l.items)
        ]

    loans = sorted(loans, key=lambda l: l.request_date, reverse=True)
    offset = (page - 1) * size
    return loans[offset:offset + size], len(loans)


def get_loan_request_by_id(stores: Stores, loan_id: str) -> Optional[LoanRequest]:
    return stores.loan_requests.get(loan_id)


def calculate_pages(total: int, size: int) -> int:
    return math.ceil(total / size) if size > 0 else 0
