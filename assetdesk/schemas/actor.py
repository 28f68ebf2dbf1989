from typing import FrozenSet, Optional

from pydantic import BaseModel


class Actor(BaseModel):
    """The authenticated caller, as described by its bearer token."""

    name: str
    role: str
    division: Optional[str] = None
    permissions: FrozenSet[str] = frozenset()

    def can(self, permission: str) -> bool:
        return permission in self.permissions
