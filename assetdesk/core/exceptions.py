"""Error taxonomy shared by stores, services and endpoints."""
from typing import Optional


class AssetDeskError(Exception):
    """Base class for all domain errors."""


class ValidationError(AssetDeskError, ValueError):
    """A decision or command is incomplete or inconsistent. Nothing was written."""

    def __init__(self, message: str, item_id: Optional[int] = None):
        super().__init__(message)
        self.item_id = item_id


class InvalidTransitionError(AssetDeskError, ValueError):
    """The lifecycle event is not allowed from the request's current status."""


class AvailabilityError(AssetDeskError):
    """An asset is not in storage, does not fit the item, or is already claimed."""

    def __init__(self, message: str, asset_id: Optional[str] = None):
        super().__init__(message)
        self.asset_id = asset_id


class NotFoundError(AssetDeskError, LookupError):
    """A referenced document does not exist."""


class PersistenceError(AssetDeskError):
    """The persistence adapter failed to read or replace a collection."""

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(message)
        self.collection = collection
