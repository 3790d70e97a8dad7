from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence

from ..permissions.model import PermissionFlags
from .model import CustomRole, PasswordResetToken, User


class UserRepository(Protocol):
    """Persistence for accounts; services depend on this, not on the ORM session."""

    def get_by_id(self, user_id: int) -> Optional[User]:
        raise NotImplementedError

    def get_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    def list_page(self, *, page: int, page_size: int, search: Optional[str] = None) -> tuple[Sequence[User], int]:
        raise NotImplementedError

    def list_active_admins(self) -> Sequence[User]:
        raise NotImplementedError

    def count_with_custom_role(self, role_id: int) -> int:
        raise NotImplementedError

    def add(self, user: User) -> User:
        raise NotImplementedError

    def add_reset_token(self, token: PasswordResetToken) -> None:
        raise NotImplementedError

    def get_reset_token(self, token_hash: str) -> Optional[PasswordResetToken]:
        raise NotImplementedError


class RoleRepository(Protocol):
    def get_by_id(self, role_id: int) -> Optional[CustomRole]:
        raise NotImplementedError

    def get_by_name(self, name: str) -> Optional[CustomRole]:
        raise NotImplementedError

    def list_all(self) -> Sequence[CustomRole]:
        raise NotImplementedError

    def add(self, role: CustomRole) -> CustomRole:
        raise NotImplementedError

    def delete(self, role: CustomRole) -> None:
        raise NotImplementedError

    def grants_for(self, role_id: int) -> dict[str, PermissionFlags]:
        raise NotImplementedError

    def set_grants(self, role: CustomRole, grants: Mapping[str, PermissionFlags], *, prune: bool = False) -> None:
        """Replace grants for the given permission names.

        Other grants are kept unless ``prune`` is set, which drops every
        non-dashboard grant missing from ``grants``.
        """
        raise NotImplementedError
