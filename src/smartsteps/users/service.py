from __future__ import annotations

import hashlib
import logging
import secrets
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from ..audit.service import AuditLogger
from ..common.datetime_utils import now_utc
from ..common.validators import optional_str, parse_bool, parse_int, require_email, require_min_length, require_non_empty
from ..core.constants import MIN_PASSWORD_LENGTH
from ..core.enums import AuditAction, UserRole
from ..core.exceptions import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from ..email_queue.mailer import Mailer, render_email
from ..permissions.catalog import DASHBOARD_SECTIONS, all_permission_names
from ..permissions.model import PermissionFlags, SessionUser
from ..permissions.resolver import resolve_permissions
from .model import CustomRole, PasswordResetToken, User
from .repository import RoleRepository, UserRepository

logger = logging.getLogger(__name__)

Transaction = Callable[[], AbstractContextManager]

TEMP_PASSWORD_DAYS = 7


@dataclass(frozen=True)
class LoginPolicy:
    max_attempts: int = 5
    lock_minutes: int = 30


def _check(hash_value: Optional[str], password: str) -> bool:
    if not hash_value:
        return False
    try:
        return check_password_hash(hash_value, password)
    except (ValueError, TypeError):
        # placeholder or corrupted hashes
        return False


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
    text = optional_str(value)
    if text is None:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO date-time")


class AuthService:
    """Use case: login, session resolution, password change."""

    def __init__(
        self,
        users: UserRepository,
        roles: RoleRepository,
        audit: AuditLogger,
        transaction: Transaction,
        *,
        policy: LoginPolicy = LoginPolicy(),
    ):
        self._users = users
        self._roles = roles
        self._audit = audit
        self._tx = transaction
        self._policy = policy

    def build_session_user(self, user: User) -> SessionUser:
        role = UserRole(user.role)
        grants = None
        if role == UserRole.CUSTOM and user.custom_role_id:
            grants = self._roles.grants_for(user.custom_role_id)
        return SessionUser(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=role,
            permissions=resolve_permissions(role, all_permission_names(), grants),
            must_change_password=bool(user.must_change_password),
            custom_role_id=user.custom_role_id,
        )

    def session_user(self, user_id: int) -> Optional[SessionUser]:
        user = self._users.get_by_id(user_id)
        if not user or not user.active:
            return None
        return self.build_session_user(user)

    def login(self, email: str, password: str) -> SessionUser:
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = self._users.get_by_email(email)
        if not user or user.is_deleted:
            raise AuthenticationError("Invalid credentials")
        if not user.active:
            raise AuthenticationError("Account is inactive")

        now = now_utc()
        if user.locked_until and user.locked_until > now:
            minutes_left = max(int((user.locked_until - now).total_seconds() // 60) + 1, 1)
            raise AuthenticationError(f"Account is locked. Try again in {minutes_left} minute(s)")
        if user.activation_start and now < user.activation_start:
            raise AuthenticationError("Account is not active yet")
        if user.activation_end and now > user.activation_end:
            raise AuthenticationError("Account access has expired")

        used_temp = False
        if user.temp_password_hash and _check(user.temp_password_hash, password):
            if user.temp_password_expires_at and user.temp_password_expires_at < now:
                raise AuthenticationError("Temporary password has expired")
            used_temp = True
        elif not _check(user.password_hash, password):
            self._register_failure(user, now)
            raise AuthenticationError("Invalid credentials")

        with self._tx():
            user.failed_login_attempts = 0
            user.locked_until = None
            user.last_login_at = now
            if used_temp:
                user.must_change_password = True
            self._audit.record(AuditAction.LOGIN, "User", user.id, user_id=user.id, metadata={"temp_password": used_temp})

        logger.info("User %s signed in", user.id)
        return self.build_session_user(user)

    def _register_failure(self, user: User, now: datetime) -> None:
        with self._tx():
            attempts = int(user.failed_login_attempts or 0) + 1
            user.failed_login_attempts = attempts
            if attempts >= self._policy.max_attempts:
                user.locked_until = now + timedelta(minutes=self._policy.lock_minutes)
                self._audit.record(
                    AuditAction.UPDATE,
                    "User",
                    user.id,
                    user_id=user.id,
                    metadata={"event": "ACCOUNT_LOCKED", "failed_attempts": attempts},
                )
                logger.warning("Locked user %s after %d failed logins", user.id, attempts)

    def change_password(self, actor: SessionUser, *, current_password: str, new_password: str) -> None:
        user = self._users.get_by_id(actor.user_id)
        if not user:
            raise AuthenticationError("Authentication required")
        if not (_check(user.password_hash, current_password or "") or _check(user.temp_password_hash, current_password or "")):
            raise ValidationError("Current password is incorrect")
        require_min_length(new_password, "New password", MIN_PASSWORD_LENGTH)

        with self._tx():
            user.password_hash = generate_password_hash(new_password)
            user.temp_password_hash = None
            user.temp_password_expires_at = None
            user.must_change_password = False
            self._audit.record(AuditAction.UPDATE, "User", user.id, user_id=user.id, metadata={"event": "PASSWORD_CHANGED"})


class PasswordResetService:
    def __init__(
        self,
        users: UserRepository,
        mailer: Mailer,
        audit: AuditLogger,
        transaction: Transaction,
        *,
        app_url: str,
        token_minutes: int = 60,
    ):
        self._users = users
        self._mailer = mailer
        self._audit = audit
        self._tx = transaction
        self._app_url = app_url.rstrip("/")
        self._minutes = token_minutes

    def request_reset(self, email: str) -> None:
        """Never reveals whether the address exists."""
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required")
        user = self._users.get_by_email(email)
        if not user or user.is_deleted or not user.active:
            logger.info("Password reset requested for unknown or inactive account")
            return

        token = secrets.token_urlsafe(32)
        with self._tx():
            self._users.add_reset_token(
                PasswordResetToken(
                    user_id=user.id,
                    token_hash=_hash_token(token),
                    expires_at=now_utc() + timedelta(minutes=self._minutes),
                )
            )

        html = render_email(
            "password_reset.html",
            full_name=user.full_name,
            reset_url=f"{self._app_url}/reset-password?token={token}",
            minutes=self._minutes,
        )
        try:
            self._mailer.send(to=[user.email], subject="Reset your Smart Steps password", html=html)
        except Exception:
            logger.exception("Could not send password reset email to user %s", user.id)

    def reset_password(self, token: str, new_password: str) -> None:
        token = require_non_empty(token, "Token")
        require_min_length(new_password, "Password", MIN_PASSWORD_LENGTH)

        row = self._users.get_reset_token(_hash_token(token))
        now = now_utc()
        if not row or row.used_at is not None or row.expires_at < now:
            raise ValidationError("Reset link is invalid or has expired")
        user = self._users.get_by_id(row.user_id)
        if not user:
            raise ValidationError("Reset link is invalid or has expired")

        with self._tx():
            row.used_at = now
            user.password_hash = generate_password_hash(new_password)
            user.temp_password_hash = None
            user.temp_password_expires_at = None
            user.must_change_password = False
            user.failed_login_attempts = 0
            user.locked_until = None
            self._audit.record(AuditAction.UPDATE, "User", user.id, user_id=user.id, metadata={"event": "PASSWORD_RESET"})


class UserService:
    """Use case: manage accounts (users.* permissions)."""

    def __init__(
        self,
        users: UserRepository,
        roles: RoleRepository,
        audit: AuditLogger,
        transaction: Transaction,
        *,
        mailer: Optional[Mailer] = None,
        app_url: str = "",
    ):
        self._users = users
        self._roles = roles
        self._audit = audit
        self._tx = transaction
        self._mailer = mailer
        self._app_url = app_url.rstrip("/")

    def list_users(self, *, page: int, page_size: int, search: Optional[str] = None) -> dict:
        items, total = self._users.list_page(page=page, page_size=page_size, search=search)
        return {"items": [u.to_dict() for u in items], "total": total, "page": page, "page_size": page_size}

    def get_user(self, user_id: int) -> User:
        user = self._users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _role_fields(self, actor: SessionUser, payload: Mapping[str, Any], current: Optional[User] = None) -> tuple[str, Optional[int]]:
        raw = payload.get("role", current.role if current else UserRole.USER.value)
        try:
            role = UserRole(str(raw).upper())
        except ValueError:
            raise ValidationError(f"Unknown role: {raw}")
        if role == UserRole.SUPER_ADMIN and not actor.is_super_admin:
            raise AuthorizationError("Only a super admin can grant SUPER_ADMIN")

        custom_role_id = None
        if role == UserRole.CUSTOM:
            raw_id = payload.get("custom_role_id", current.custom_role_id if current else None)
            if raw_id in (None, ""):
                raise ValidationError("custom_role_id is required for CUSTOM role")
            custom_role_id = parse_int(raw_id, "custom_role_id")
            if not self._roles.get_by_id(custom_role_id):
                raise ValidationError("Custom role not found")
        return role.value, custom_role_id

    def create_user(self, actor: SessionUser, payload: Mapping[str, Any]) -> tuple[User, Optional[str]]:
        """Returns the new user and, when no password was given, a one-time temp password."""
        email = require_email(payload.get("email"))
        full_name = require_non_empty(payload.get("full_name") or payload.get("name"), "Full name")
        if self._users.get_by_email(email):
            raise ValidationError("Email already exists")
        role, custom_role_id = self._role_fields(actor, payload)

        password = payload.get("password")
        temp_password = None
        user = User(
            email=email,
            full_name=full_name,
            role=role,
            custom_role_id=custom_role_id,
            active=parse_bool(payload.get("active", True)),
            activation_start=_parse_datetime(payload.get("activation_start"), "activation_start"),
            activation_end=_parse_datetime(payload.get("activation_end"), "activation_end"),
            failed_login_attempts=0,
        )
        if password:
            require_min_length(password, "Password", MIN_PASSWORD_LENGTH)
            user.password_hash = generate_password_hash(password)
            user.must_change_password = False
        else:
            temp_password = secrets.token_urlsafe(9)
            user.password_hash = generate_password_hash(secrets.token_urlsafe(24))
            user.temp_password_hash = generate_password_hash(temp_password)
            user.temp_password_expires_at = now_utc() + timedelta(days=TEMP_PASSWORD_DAYS)
            user.must_change_password = True

        with self._tx():
            self._users.add(user)
            self._audit.record(AuditAction.CREATE, "User", user.id, user_id=actor.user_id, new_values={"email": email, "role": role})
        return user, temp_password

    def update_user(self, actor: SessionUser, user_id: int, payload: Mapping[str, Any]) -> User:
        user = self.get_user(user_id)
        if user.role == UserRole.SUPER_ADMIN.value and not actor.is_super_admin:
            raise AuthorizationError("Only a super admin can edit a super admin")
        old = {"full_name": user.full_name, "role": user.role, "active": bool(user.active)}

        with self._tx():
            if "full_name" in payload:
                user.full_name = require_non_empty(payload.get("full_name"), "Full name")
            if "email" in payload:
                email = require_email(payload.get("email"))
                other = self._users.get_by_email(email)
                if other and other.id != user.id:
                    raise ValidationError("Email already exists")
                user.email = email
            if "role" in payload or "custom_role_id" in payload:
                user.role, user.custom_role_id = self._role_fields(actor, payload, current=user)
            if "active" in payload:
                user.active = parse_bool(payload.get("active"))
            if "activation_start" in payload:
                user.activation_start = _parse_datetime(payload.get("activation_start"), "activation_start")
            if "activation_end" in payload:
                user.activation_end = _parse_datetime(payload.get("activation_end"), "activation_end")
            if payload.get("password"):
                require_min_length(payload["password"], "Password", MIN_PASSWORD_LENGTH)
                user.password_hash = generate_password_hash(payload["password"])
            if parse_bool(payload.get("unlock")):
                user.failed_login_attempts = 0
                user.locked_until = None
            self._audit.record(
                AuditAction.UPDATE,
                "User",
                user.id,
                user_id=actor.user_id,
                old_values=old,
                new_values={"full_name": user.full_name, "role": user.role, "active": bool(user.active)},
            )
        return user

    def delete_user(self, actor: SessionUser, user_id: int) -> None:
        user = self.get_user(user_id)
        if user.id == actor.user_id:
            raise ValidationError("You cannot delete your own account")
        if user.role == UserRole.SUPER_ADMIN.value:
            raise ValidationError("A super admin account cannot be deleted")
        with self._tx():
            user.soft_delete()
            user.active = False
            self._audit.record(AuditAction.DELETE, "User", user.id, user_id=actor.user_id)

    def resend_invite(self, actor: SessionUser, user_id: int) -> dict:
        """Issue a fresh temp password and email it to the user."""
        user = self.get_user(user_id)
        temp_password = secrets.token_urlsafe(9)
        with self._tx():
            user.temp_password_hash = generate_password_hash(temp_password)
            user.temp_password_expires_at = now_utc() + timedelta(days=TEMP_PASSWORD_DAYS)
            user.must_change_password = True
            self._audit.record(AuditAction.UPDATE, "User", user.id, user_id=actor.user_id, metadata={"event": "INVITE_RESENT"})

        email_sent = False
        if self._mailer is not None:
            html = render_email(
                "invite.html",
                full_name=user.full_name,
                login_url=f"{self._app_url}/login",
                temp_password=temp_password,
                days=TEMP_PASSWORD_DAYS,
            )
            try:
                self._mailer.send(to=[user.email], subject="Your Smart Steps account", html=html)
                email_sent = True
            except Exception:
                logger.exception("Could not send invite email to user %s", user.id)
        result = {"email_sent": email_sent}
        if email_sent:
            result["message"] = f"Invitation sent to {user.email}"
        else:
            # the admin has to pass the password on by hand
            result["message"] = "Temporary password reset but the invitation email could not be sent"
            result["temp_password"] = temp_password
        return result

    def mark_activity_seen(self, actor: SessionUser) -> datetime:
        user = self.get_user(actor.user_id)
        seen = now_utc()
        with self._tx():
            user.last_seen_activity_at = seen
        return seen


def _flags_from_payload(raw: Any) -> PermissionFlags:
    if isinstance(raw, bool):
        return PermissionFlags(can_view=raw)
    if not isinstance(raw, Mapping):
        raise ValidationError("Permission grants must be objects of flags")

    def flag(name: str) -> bool:
        camel = "can" + name.capitalize()
        return parse_bool(raw.get(camel, raw.get(f"can_{name}", False)))

    return PermissionFlags(
        can_view=flag("view"),
        can_create=flag("create"),
        can_update=flag("update"),
        can_delete=flag("delete"),
        can_approve=flag("approve"),
        can_export=flag("export"),
    )


class RoleService:
    """Custom roles and their per-permission grants."""

    def __init__(self, roles: RoleRepository, users: UserRepository, audit: AuditLogger, transaction: Transaction):
        self._roles = roles
        self._users = users
        self._audit = audit
        self._tx = transaction

    def list_roles(self) -> list[dict]:
        return [r.to_dict() for r in self._roles.list_all()]

    def get_role(self, role_id: int) -> CustomRole:
        role = self._roles.get_by_id(role_id)
        if not role:
            raise NotFoundError("Role not found")
        return role

    @staticmethod
    def _grants(payload: Mapping[str, Any]) -> dict[str, PermissionFlags]:
        raw = payload.get("permissions")
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ValidationError("permissions must be an object keyed by permission name")
        known = set(all_permission_names())
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValidationError(f"Unknown permission(s): {', '.join(unknown)}")
        return {name: _flags_from_payload(flags) for name, flags in raw.items()}

    def create_role(self, actor: SessionUser, payload: Mapping[str, Any]) -> CustomRole:
        name = require_non_empty(payload.get("name"), "Role name")
        if self._roles.get_by_name(name):
            raise ValidationError("A role with this name already exists")
        grants = self._grants(payload)
        with self._tx():
            role = self._roles.add(CustomRole(name=name, description=optional_str(payload.get("description"))))
            self._roles.set_grants(role, grants)
            self._audit.record(AuditAction.CREATE, "CustomRole", role.id, user_id=actor.user_id, new_values={"name": name})
        return role

    def update_role(self, actor: SessionUser, role_id: int, payload: Mapping[str, Any]) -> CustomRole:
        role = self.get_role(role_id)
        grants = self._grants(payload)
        with self._tx():
            if "name" in payload:
                name = require_non_empty(payload.get("name"), "Role name")
                other = self._roles.get_by_name(name)
                if other and other.id != role.id:
                    raise ValidationError("A role with this name already exists")
                role.name = name
            if "description" in payload:
                role.description = optional_str(payload.get("description"))
            if payload.get("permissions") is not None:
                # the submitted map is the full set of non-dashboard grants
                self._roles.set_grants(role, grants, prune=True)
            self._audit.record(AuditAction.UPDATE, "CustomRole", role.id, user_id=actor.user_id, new_values={"name": role.name})
        return role

    def delete_role(self, actor: SessionUser, role_id: int) -> None:
        role = self.get_role(role_id)
        if self._users.count_with_custom_role(role.id) > 0:
            raise ValidationError("Role is assigned to users and cannot be deleted")
        with self._tx():
            self._roles.delete(role)
            self._audit.record(AuditAction.DELETE, "CustomRole", role_id, user_id=actor.user_id)

    def set_dashboard_visibility(self, actor: SessionUser, role_id: int, sections: Mapping[str, Any]) -> CustomRole:
        role = self.get_role(role_id)
        unknown = sorted(set(sections) - set(DASHBOARD_SECTIONS))
        if unknown:
            raise ValidationError(f"Unknown dashboard section(s): {', '.join(unknown)}")
        grants = {f"dashboard.{section}": PermissionFlags(can_view=parse_bool(visible)) for section, visible in sections.items()}
        with self._tx():
            self._roles.set_grants(role, grants)
            self._audit.record(
                AuditAction.UPDATE,
                "CustomRole",
                role.id,
                user_id=actor.user_id,
                metadata={"dashboard": {k: parse_bool(v) for k, v in sections.items()}},
            )
        return role
