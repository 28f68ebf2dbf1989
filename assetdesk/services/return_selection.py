from typing import List, Set

from assetdesk.core.exceptions import ValidationError
from assetdesk.schemas.loan import LoanRequest


class ReturnSelection:
    """Which of a request's loaned assets are coming back in one confirmation.

    Starts with every active asset selected. Only active assets (assigned
    and not yet returned) can be selected.
    """

    def __init__(self, loan_request: LoanRequest):
        self.loan_request = loan_request
        self.active_asset_ids: List[str] = loan_request.outstanding_asset_ids()
        self._selected: Set[str] = set(self.active_asset_ids)

    @property
    def selected(self) -> List[str]:
        return [a for a in self.active_asset_ids if a in self._selected]

    def _check_active(self, asset_id: str) -> None:
        if asset_id not in self.active_asset_ids:
            raise ValidationError(
                f"Asset {asset_id} is not on loan under request {self.loan_request.id}"
            )

    def select(self, asset_id: str) -> None:
        self._check_active(asset_id)
        self._selected.add(asset_id)

    def deselect(self, asset_id: str) -> None:
        self._check_active(asset_id)
        self._selected.discard(asset_id)

    def toggle(self, asset_id: str) -> bool:
        """Flip one asset; returns whether it is now selected."""
        if asset_id in self._selected:
            self.deselect(asset_id)
            return False
        self.select(asset_id)
        return True

    def select_all(self) -> None:
        self._selected = set(self.active_asset_ids)

    def clear(self) -> None:
        self._selected = set()

    def confirm(self) -> List[str]:
        selected = self.selected
        if not selected:
            raise ValidationError("Select at least one asset to return")
        return selected
