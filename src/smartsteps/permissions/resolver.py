from __future__ import annotations

from typing import Iterable, Mapping, Optional

from ..core.enums import UserRole
from .catalog import ADMIN_EXCLUDED, BASIC_USER_PERMISSIONS, ROUTE_SECTIONS
from .model import ALL_FLAGS, PermissionFlags, SessionUser


def resolve_permissions(
    role: UserRole,
    all_names: Iterable[str],
    custom_grants: Optional[Mapping[str, PermissionFlags]] = None,
) -> dict[str, PermissionFlags]:
    """Build the effective permission map for an account role.

    SUPER_ADMIN gets everything. ADMIN gets everything except the
    dangerous deletes and never ``can_delete``. CUSTOM uses the stored role
    grants as-is. Anything else falls back to the basic timesheet set.
    """
    names = list(all_names)

    if role == UserRole.SUPER_ADMIN:
        return {name: ALL_FLAGS for name in names}

    if role == UserRole.ADMIN:
        return {
            name: PermissionFlags(
                can_view=True,
                can_create=".delete" not in name,
                can_update=True,
                can_delete=False,
                can_approve=True,
                can_export=True,
            )
            for name in names
            if name not in ADMIN_EXCLUDED
        }

    if role == UserRole.CUSTOM and custom_grants is not None:
        return dict(custom_grants)

    return {
        name: PermissionFlags(
            can_view=True,
            can_create=".create" in name,
            can_update=".update" in name,
        )
        for name in names
        if name in BASIC_USER_PERMISSIONS
    }


def can_see_dashboard_section(user: SessionUser, section: str) -> bool:
    if user.is_admin:
        return True
    return user.can(f"dashboard.{section}", "view")


def can_access_route(user: SessionUser, route: str) -> bool:
    section = ROUTE_SECTIONS.get(route)
    if not section:
        # unmapped routes are open to any signed-in user
        return True
    return can_see_dashboard_section(user, section)


def has_permission(user: SessionUser, name: str, action: str = "view") -> bool:
    """Route-level check.

    Permission names already encode the operation (``clients.delete``), so
    routes test the ``view`` flag of that name. SUPER_ADMIN always passes;
    ADMIN passes through its resolved map, which lacks the excluded deletes.
    """
    return user.is_super_admin or user.can(name, action)
