"""Review panel that resolves a pending loan request into a LoanDecision.

The panel keeps its own uncommitted view of which assets are spoken for:
an explicit reservation map ``asset_id -> (item_id, slot)`` that every
slot mutation updates. Candidate lists and availability checks read that
map, so an asset picked for one slot disappears from every other slot of
every item until it is released again.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from assetdesk.core.exceptions import AvailabilityError, InvalidTransitionError, ValidationError
from assetdesk.schemas.asset import Asset, AssetStatus
from assetdesk.schemas.loan import (
    AssignmentDraft,
    ItemDecision,
    ItemDecisionStatus,
    LoanDecision,
    LoanItem,
    LoanRequest,
    LoanRequestStatus,
)
from assetdesk.stores.asset import stock_key


def derive_item_status(approved_quantity: int, requested_quantity: int) -> ItemDecisionStatus:
    if approved_quantity <= 0:
        return ItemDecisionStatus.REJECTED
    if approved_quantity < requested_quantity:
        return ItemDecisionStatus.PARTIAL
    return ItemDecisionStatus.APPROVED


@dataclass
class ItemAssignment:
    item: LoanItem
    approved_qty: int
    reason: str = ""
    assigned_assets: List[Optional[str]] = field(default_factory=list)

    @property
    def requested_qty(self) -> int:
        return self.item.quantity

    @property
    def status(self) -> ItemDecisionStatus:
        return derive_item_status(self.approved_qty, self.requested_qty)


class AssignmentPanel:
    def __init__(
        self,
        loan_request: LoanRequest,
        assets: Iterable[Asset],
        reserved_elsewhere: Iterable[str] = (),
    ):
        if loan_request.status != LoanRequestStatus.PENDING:
            raise InvalidTransitionError(
                f"Loan request {loan_request.id} is not awaiting review "
                f"(status: '{loan_request.status.value}')"
            )
        self.loan_request = loan_request
        self._assets: Dict[str, Asset] = {a.id: a for a in assets}
        self._reserved_elsewhere = frozenset(reserved_elsewhere)
        self._reservations: Dict[str, Tuple[int, int]] = {}
        self._items: Dict[int, ItemAssignment] = {
            item.id: ItemAssignment(
                item=item,
                approved_qty=item.quantity,
                assigned_assets=[None] * item.quantity,
            )
            for item in loan_request.items
        }

    @property
    def items(self) -> List[ItemAssignment]:
        return list(self._items.values())

    @property
    def reserved_asset_ids(self) -> List[str]:
        return list(self._reservations)

    def item(self, item_id: int) -> ItemAssignment:
        state = self._items.get(item_id)
        if state is None:
            raise ValidationError(
                f"Item {item_id} is not part of loan request {self.loan_request.id}",
                item_id=item_id,
            )
        return state

    # ─── Quantity and reason ─────────────────────────────────────

    def set_approved_quantity(self, item_id: int, qty: int) -> int:
        """Clamp ``qty`` to [0, requested] and resize the slot list, keeping the prefix."""
        state = self.item(item_id)
        qty = max(0, min(int(qty), state.requested_qty))

        for asset_id in state.assigned_assets[qty:]:
            self._release(asset_id)
        kept = state.assigned_assets[:qty]
        state.assigned_assets = kept + [None] * (qty - len(kept))
        state.approved_qty = qty
        return qty

    def reject_item(self, item_id: int) -> None:
        self.set_approved_quantity(item_id, 0)

    def set_reason(self, item_id: int, text: Optional[str]) -> None:
        self.item(item_id).reason = text or ""

    # ─── Slot assignment ─────────────────────────────────────────

    def is_reserved(
        self, asset_id: str, item_id: Optional[int] = None, slot_index: Optional[int] = None
    ) -> bool:
        """True when the asset is held by any slot other than (item_id, slot_index)."""
        if asset_id in self._reserved_elsewhere:
            return True
        holder = self._reservations.get(asset_id)
        return holder is not None and holder != (item_id, slot_index)

    def candidates(self, item_id: int, slot_index: Optional[int] = None) -> List[Asset]:
        state = self.item(item_id)
        key = stock_key(state.item.item_name, state.item.brand)
        return [
            asset
            for asset in self._assets.values()
            if asset.status == AssetStatus.IN_STORAGE
            and stock_key(asset.name, asset.brand) == key
            and not self.is_reserved(asset.id, item_id, slot_index)
        ]

    def assign_asset(self, item_id: int, slot_index: int, asset_id: Optional[str]) -> None:
        """Put ``asset_id`` in a slot. An empty value clears the slot."""
        state = self.item(item_id)
        if not 0 <= slot_index < len(state.assigned_assets):
            raise ValidationError(
                f"Slot {slot_index + 1} is outside the approved quantity "
                f"({state.approved_qty}) of item '{state.item.item_name}'",
                item_id=item_id,
            )

        previous = state.assigned_assets[slot_index]
        if not asset_id:
            self._release(previous)
            state.assigned_assets[slot_index] = None
            return
        if asset_id == previous:
            return

        self._check_available(state, asset_id, slot_index)
        self._release(previous)
        state.assigned_assets[slot_index] = asset_id
        self._reservations[asset_id] = (item_id, slot_index)

    def scan_assign(self, item_id: int, code: str, slot_index: Optional[int] = None) -> str:
        """Resolve a scanned id or serial number and place it in a slot.

        Without ``slot_index`` the first empty slot of the item is filled.
        Returns the resolved asset id.
        """
        state = self.item(item_id)
        asset = self.resolve_code(code)
        if asset is None:
            raise AvailabilityError(f"No asset in storage matches scanned code '{code.strip()}'")

        if slot_index is None:
            # A claimed asset fails the same way whichever slot it would land in
            self._check_available(state, asset.id, None)
            slot_index = next(
                (i for i, current in enumerate(state.assigned_assets) if not current), None
            )
            if slot_index is None:
                raise ValidationError(
                    f"All {state.approved_qty} slot(s) of item '{state.item.item_name}' are filled",
                    item_id=item_id,
                )

        self.assign_asset(item_id, slot_index, asset.id)
        return asset.id

    def resolve_code(self, code: str) -> Optional[Asset]:
        code = code.strip()
        if not code:
            return None
        in_storage = [a for a in self._assets.values() if a.status == AssetStatus.IN_STORAGE]
        by_id = next((a for a in in_storage if a.id == code), None)
        if by_id is not None:
            return by_id
        return next((a for a in in_storage if a.serial_number == code), None)

    def apply_draft(self, draft: AssignmentDraft) -> None:
        """Replay a reviewer's draft (quantity, reason, slot picks) onto the panel."""
        for entry in draft.items:
            approved = self.set_approved_quantity(entry.item_id, entry.approved_quantity)
            self.set_reason(entry.item_id, entry.reason)
            if len(entry.asset_ids) > approved:
                raise ValidationError(
                    f"{len(entry.asset_ids)} assets given for item "
                    f"'{self.item(entry.item_id).item.item_name}' but only {approved} approved",
                    item_id=entry.item_id,
                )
            for slot_index, asset_id in enumerate(entry.asset_ids):
                self.assign_asset(entry.item_id, slot_index, asset_id)

    # ─── Validation and submit ───────────────────────────────────

    def validate(self) -> None:
        """Raise ValidationError for the first item that blocks submission."""
        claimed_by: Dict[str, int] = {}
        for state in self.items:
            item_id = state.item.id
            name = state.item.item_name

            if state.approved_qty < state.requested_qty and not state.reason.strip():
                raise ValidationError(
                    f"A reason is required for item '{name}': approved "
                    f"{state.approved_qty} of {state.requested_qty}",
                    item_id=item_id,
                )
            if state.approved_qty == 0:
                continue

            slots = state.assigned_assets
            if len(slots) != state.approved_qty or any(not s for s in slots):
                raise ValidationError(
                    f"Incomplete assignment for item '{name}': "
                    f"{sum(1 for s in slots if s)} of {state.approved_qty} slot(s) filled",
                    item_id=item_id,
                )
            if len(set(slots)) != len(slots):
                raise ValidationError(
                    f"Duplicate assignment for item '{name}': the same asset fills more than one slot",
                    item_id=item_id,
                )
            for asset_id in slots:
                holder = claimed_by.setdefault(asset_id, item_id)
                if holder != item_id:
                    raise ValidationError(
                        f"Duplicate assignment for item '{name}': asset {asset_id} "
                        f"is already assigned to item {holder}",
                        item_id=item_id,
                    )

    def submit(self) -> LoanDecision:
        self.validate()
        item_statuses: Dict[int, ItemDecision] = {}
        assigned_asset_ids: Dict[int, List[str]] = {}
        for state in self.items:
            item_statuses[state.item.id] = ItemDecision(
                status=state.status,
                reason=state.reason.strip(),
                approved_quantity=state.approved_qty,
            )
            if state.approved_qty > 0:
                assigned_asset_ids[state.item.id] = [a for a in state.assigned_assets if a]
        return LoanDecision(item_statuses=item_statuses, assigned_asset_ids=assigned_asset_ids)

    # ─── Internals ───────────────────────────────────────────────

    def _release(self, asset_id: Optional[str]) -> None:
        if asset_id:
            self._reservations.pop(asset_id, None)

    def _check_available(self, state: ItemAssignment, asset_id: str, slot_index: Optional[int]) -> None:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise AvailabilityError(f"Asset {asset_id} not found", asset_id=asset_id)
        if asset.status != AssetStatus.IN_STORAGE:
            raise AvailabilityError(
                f"Asset {asset_id} is not in storage (status: '{asset.status.value}')",
                asset_id=asset_id,
            )
        if stock_key(asset.name, asset.brand) != stock_key(state.item.item_name, state.item.brand):
            raise AvailabilityError(
                f"Asset {asset_id} ({asset.name} / {asset.brand}) does not match item "
                f"'{state.item.item_name}' / {state.item.brand}",
                asset_id=asset_id,
            )
        if self.is_reserved(asset_id, state.item.id, slot_index):
            raise AvailabilityError(
                f"Asset {asset_id} is already claimed by another slot or loan request",
                asset_id=asset_id,
            )
