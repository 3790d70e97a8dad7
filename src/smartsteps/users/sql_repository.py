from __future__ import annotations

from typing import Mapping, Optional, Sequence

from sqlalchemy import func, or_

from ..core.enums import UserRole
from ..database.extensions import db
from ..permissions.model import PermissionFlags
from .model import CustomRole, PasswordResetToken, Permission, RolePermission, User
from .repository import RoleRepository, UserRepository


class SQLUserRepository(UserRepository):
    def get_by_id(self, user_id: int) -> Optional[User]:
        return User.live().filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        # deleted accounts are returned too, login reports them as invalid
        return User.query.filter(func.lower(User.email) == email.lower()).first()

    def list_page(self, *, page: int, page_size: int, search: Optional[str] = None) -> tuple[Sequence[User], int]:
        q = User.live()
        if search:
            like = f"%{search.strip()}%"
            q = q.filter(or_(User.email.ilike(like), User.full_name.ilike(like)))
        total = q.count()
        items = q.order_by(User.full_name.asc()).offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def list_active_admins(self) -> Sequence[User]:
        return (
            User.live()
            .filter(User.active.is_(True), User.role.in_([UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value]))
            .all()
        )

    def count_with_custom_role(self, role_id: int) -> int:
        return User.live().filter(User.custom_role_id == role_id).count()

    def add(self, user: User) -> User:
        db.session.add(user)
        db.session.flush()
        return user

    def add_reset_token(self, token: PasswordResetToken) -> None:
        db.session.add(token)
        db.session.flush()

    def get_reset_token(self, token_hash: str) -> Optional[PasswordResetToken]:
        return PasswordResetToken.query.filter_by(token_hash=token_hash).first()


class SQLRoleRepository(RoleRepository):
    def get_by_id(self, role_id: int) -> Optional[CustomRole]:
        return db.session.get(CustomRole, role_id)

    def get_by_name(self, name: str) -> Optional[CustomRole]:
        return CustomRole.query.filter(func.lower(CustomRole.name) == name.lower()).first()

    def list_all(self) -> Sequence[CustomRole]:
        return CustomRole.query.order_by(CustomRole.name.asc()).all()

    def add(self, role: CustomRole) -> CustomRole:
        db.session.add(role)
        db.session.flush()
        return role

    def delete(self, role: CustomRole) -> None:
        db.session.delete(role)
        db.session.flush()

    def grants_for(self, role_id: int) -> dict[str, PermissionFlags]:
        rows = RolePermission.query.filter_by(role_id=role_id).all()
        return {row.permission.name: row.flags() for row in rows}

    def set_grants(self, role: CustomRole, grants: Mapping[str, PermissionFlags], *, prune: bool = False) -> None:
        if prune:
            for row in list(role.grants):
                name = row.permission.name
                if name not in grants and not name.startswith("dashboard."):
                    role.grants.remove(row)
        by_name = {p.name: p for p in Permission.query.filter(Permission.name.in_(list(grants))).all()} if grants else {}
        existing = {g.permission_id: g for g in role.grants}
        for name, flags in grants.items():
            perm = by_name.get(name)
            if perm is None:
                continue
            row = existing.get(perm.id)
            if row is None:
                row = RolePermission(permission_id=perm.id)
                role.grants.append(row)
            row.can_view = flags.can_view
            row.can_create = flags.can_create
            row.can_update = flags.can_update
            row.can_delete = flags.can_delete
            row.can_approve = flags.can_approve
            row.can_export = flags.can_export
        db.session.flush()
