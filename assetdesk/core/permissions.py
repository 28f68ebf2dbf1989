from typing import Dict, FrozenSet, Iterable, Optional

LOAN_VIEW_OWN = "loan-requests:view:own"
LOAN_VIEW_ALL = "loan-requests:view:all"
LOAN_CREATE = "loan-requests:create"
LOAN_APPROVE = "loan-requests:approve"
LOAN_RETURN = "loan-requests:return"
ASSETS_VIEW = "assets:view"
ASSETS_CREATE = "assets:create"
ASSETS_EDIT = "assets:edit"
ASSETS_HANDOVER = "assets:handover"

ALL_PERMISSIONS: FrozenSet[str] = frozenset({
    LOAN_VIEW_OWN,
    LOAN_VIEW_ALL,
    LOAN_CREATE,
    LOAN_APPROVE,
    LOAN_RETURN,
    ASSETS_VIEW,
    ASSETS_CREATE,
    ASSETS_EDIT,
    ASSETS_HANDOVER,
})

STAFF_PERMISSIONS: FrozenSet[str] = frozenset({
    LOAN_VIEW_OWN,
    LOAN_CREATE,
    ASSETS_VIEW,
})

ADMIN_LOGISTIK_PERMISSIONS: FrozenSet[str] = frozenset({
    LOAN_VIEW_ALL,
    LOAN_APPROVE,
    LOAN_RETURN,
    ASSETS_VIEW,
    ASSETS_CREATE,
    ASSETS_EDIT,
    ASSETS_HANDOVER,
})

ADMIN_PURCHASE_PERMISSIONS: FrozenSet[str] = frozenset({
    LOAN_VIEW_ALL,
    ASSETS_VIEW,
})

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "Staff": STAFF_PERMISSIONS,
    "Leader": STAFF_PERMISSIONS,
    "Admin Logistik": ADMIN_LOGISTIK_PERMISSIONS,
    "Admin Purchase": ADMIN_PURCHASE_PERMISSIONS,
    "Super Admin": ALL_PERMISSIONS,
}


def resolve_permissions(role: str, explicit: Optional[Iterable[str]] = None) -> FrozenSet[str]:
    """Permissions carried by a token, falling back to the role preset."""
    if explicit is not None:
        return frozenset(p for p in explicit if p in ALL_PERMISSIONS)
    return ROLE_PERMISSIONS.get(role, frozenset())
