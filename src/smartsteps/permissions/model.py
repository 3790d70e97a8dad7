from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..core.enums import UserRole


@dataclass(frozen=True)
class PermissionFlags:
    can_view: bool = False
    can_create: bool = False
    can_update: bool = False
    can_delete: bool = False
    can_approve: bool = False
    can_export: bool = False

    def allows(self, action: str) -> bool:
        return bool(getattr(self, f"can_{action}", False))

    def to_dict(self) -> dict:
        return {
            "canView": self.can_view,
            "canCreate": self.can_create,
            "canUpdate": self.can_update,
            "canDelete": self.can_delete,
            "canApprove": self.can_approve,
            "canExport": self.can_export,
        }


ALL_FLAGS = PermissionFlags(True, True, True, True, True, True)


@dataclass(frozen=True)
class SessionUser:
    """The authenticated caller, resolved once per request."""

    user_id: int
    email: str
    full_name: str
    role: UserRole
    permissions: Mapping[str, PermissionFlags] = field(default_factory=dict)
    must_change_password: bool = False
    custom_role_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SUPER_ADMIN)

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    def can(self, name: str, action: str = "view") -> bool:
        flags = self.permissions.get(name)
        return bool(flags and flags.allows(action))
