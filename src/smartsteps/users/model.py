from __future__ import annotations

from ..core.enums import UserRole
from ..database.base import SoftDeleteMixin, TimestampMixin, stamp
from ..database.extensions import db
from ..permissions.model import PermissionFlags


class User(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=UserRole.USER.value)
    custom_role_id = db.Column(db.Integer, db.ForeignKey("custom_roles.id"), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    # Optional window outside of which the account cannot sign in.
    activation_start = db.Column(db.DateTime, nullable=True)
    activation_end = db.Column(db.DateTime, nullable=True)

    temp_password_hash = db.Column(db.String(255), nullable=True)
    temp_password_expires_at = db.Column(db.DateTime, nullable=True)
    must_change_password = db.Column(db.Boolean, nullable=False, default=False)

    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime, nullable=True)
    last_login_at = db.Column(db.DateTime, nullable=True)
    last_seen_activity_at = db.Column(db.DateTime, nullable=True)

    custom_role = db.relationship("CustomRole", lazy="joined")

    @property
    def user_role(self) -> UserRole:
        return UserRole(self.role)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "custom_role_id": self.custom_role_id,
            "custom_role_name": self.custom_role.name if self.custom_role else None,
            "active": bool(self.active),
            "activation_start": stamp(self.activation_start),
            "activation_end": stamp(self.activation_end),
            "must_change_password": bool(self.must_change_password),
            "locked_until": stamp(self.locked_until),
            "last_login_at": stamp(self.last_login_at),
            "created_at": stamp(self.created_at),
        }


class CustomRole(TimestampMixin, db.Model):
    __tablename__ = "custom_roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    grants = db.relationship("RolePermission", cascade="all, delete-orphan", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "permissions": {g.permission.name: g.flags().to_dict() for g in self.grants},
        }


class Permission(db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)


class RolePermission(db.Model):
    __tablename__ = "role_permissions"
    __table_args__ = (db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),)

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("custom_roles.id"), nullable=False)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id"), nullable=False)
    can_view = db.Column(db.Boolean, nullable=False, default=False)
    can_create = db.Column(db.Boolean, nullable=False, default=False)
    can_update = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)
    can_approve = db.Column(db.Boolean, nullable=False, default=False)
    can_export = db.Column(db.Boolean, nullable=False, default=False)

    permission = db.relationship("Permission", lazy="joined")

    def flags(self) -> PermissionFlags:
        return PermissionFlags(
            can_view=bool(self.can_view),
            can_create=bool(self.can_create),
            can_update=bool(self.can_update),
            can_delete=bool(self.can_delete),
            can_approve=bool(self.can_approve),
            can_export=bool(self.can_export),
        )


class PasswordResetToken(db.Model):
    __tablename__ = "password_reset_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
