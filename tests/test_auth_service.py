from __future__ import annotations

import re
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

import pytest
from werkzeug.security import generate_password_hash

from smartsteps.common.datetime_utils import now_utc
from smartsteps.core.enums import UserRole
from smartsteps.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from smartsteps.permissions.model import PermissionFlags, SessionUser
from smartsteps.users.model import PasswordResetToken, User
from smartsteps.users.service import AuthService, LoginPolicy, PasswordResetService, UserService


@dataclass
class InMemoryUsers:
    users: dict[int, User]
    reset_tokens: list = field(default_factory=list)

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.users.get(user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.email == email), None)

    def add_reset_token(self, row: PasswordResetToken) -> None:
        self.reset_tokens.append(row)

    def get_reset_token(self, token_hash: str) -> Optional[PasswordResetToken]:
        return next((r for r in self.reset_tokens if r.token_hash == token_hash), None)


@dataclass
class InMemoryRoles:
    grants: dict[int, dict[str, PermissionFlags]] = field(default_factory=dict)

    def grants_for(self, role_id: int) -> dict[str, PermissionFlags]:
        return self.grants.get(role_id, {})


class RecordingAudit:
    def __init__(self):
        self.entries = []

    def record(self, action, entity_type, entity_id=None, **kwargs):
        self.entries.append((action, entity_type, entity_id, kwargs))


def _user(user_id: int, email: str, role: UserRole = UserRole.USER, password: str = "Secret123!", **extra) -> User:
    return User(
        id=user_id,
        email=email,
        full_name=email.split("@")[0],
        password_hash=generate_password_hash(password),
        role=role.value,
        active=extra.pop("active", True),
        failed_login_attempts=0,
        must_change_password=False,
        **extra,
    )


def _service(*users: User, roles: Optional[InMemoryRoles] = None, policy: LoginPolicy = LoginPolicy()) -> AuthService:
    repo = InMemoryUsers({u.id: u for u in users})
    return AuthService(repo, roles or InMemoryRoles(), RecordingAudit(), nullcontext, policy=policy)


def test_login_success_resets_failures():
    user = _user(1, "amy@example.com")
    user.failed_login_attempts = 3
    svc = _service(user)

    session_user = svc.login("  AMY@example.com ", "Secret123!")

    assert session_user.user_id == 1
    assert session_user.can("timesheets.create", "create")
    assert not session_user.can("invoices.delete")
    assert user.failed_login_attempts == 0
    assert user.last_login_at is not None


def test_login_requires_both_fields():
    with pytest.raises(ValidationError):
        _service().login("", "x")


def test_login_wrong_password_raises_and_counts():
    user = _user(1, "amy@example.com")
    svc = _service(user)

    with pytest.raises(AuthenticationError):
        svc.login("amy@example.com", "nope")
    assert user.failed_login_attempts == 1


def test_account_locks_after_max_attempts():
    user = _user(1, "amy@example.com")
    svc = _service(user, policy=LoginPolicy(max_attempts=2, lock_minutes=30))

    for _ in range(2):
        with pytest.raises(AuthenticationError):
            svc.login("amy@example.com", "nope")

    assert user.locked_until is not None
    with pytest.raises(AuthenticationError) as exc:
        svc.login("amy@example.com", "Secret123!")
    assert "locked" in exc.value.message


def test_activation_window_is_enforced():
    user = _user(1, "amy@example.com", activation_end=now_utc() - timedelta(days=1))
    with pytest.raises(AuthenticationError) as exc:
        _service(user).login("amy@example.com", "Secret123!")
    assert "expired" in exc.value.message


def test_inactive_account_cannot_sign_in():
    user = _user(1, "amy@example.com", active=False)
    with pytest.raises(AuthenticationError):
        _service(user).login("amy@example.com", "Secret123!")


def test_temporary_password_forces_change():
    user = _user(1, "amy@example.com")
    user.temp_password_hash = generate_password_hash("Temp-Pass-1")
    user.temp_password_expires_at = now_utc() + timedelta(hours=1)

    session_user = _service(user).login("amy@example.com", "Temp-Pass-1")

    assert session_user.must_change_password
    assert user.must_change_password


def test_custom_role_uses_stored_grants():
    user = _user(1, "amy@example.com", role=UserRole.CUSTOM, custom_role_id=7)
    roles = InMemoryRoles({7: {"reports.view": PermissionFlags(can_view=True)}})

    session_user = _service(user, roles=roles).session_user(1)

    assert session_user.can("reports.view")
    assert not session_user.can("timesheets.view")


class RecordingMailer:
    def __init__(self):
        self.sent = []

    def send(self, *, to, subject, html, attachments=()):
        self.sent.append({"to": list(to), "subject": subject, "html": html})


def _reset_service(*users: User) -> tuple[PasswordResetService, InMemoryUsers, RecordingMailer]:
    repo = InMemoryUsers({u.id: u for u in users})
    mailer = RecordingMailer()
    svc = PasswordResetService(repo, mailer, RecordingAudit(), nullcontext, app_url="https://app.test/", token_minutes=60)
    return svc, repo, mailer


def _emailed_token(mailer: RecordingMailer) -> str:
    return re.search(r"token=([\w-]+)", mailer.sent[-1]["html"]).group(1)


def test_reset_token_works_once():
    user = _user(1, "amy@example.com")
    user.failed_login_attempts = 4
    svc, repo, mailer = _reset_service(user)

    svc.request_reset(" AMY@example.com")
    token = _emailed_token(mailer)
    assert mailer.sent[0]["to"] == ["amy@example.com"]
    assert repo.reset_tokens[0].token_hash != token

    svc.reset_password(token, "Brand-new-pass")
    assert _service(user).login("amy@example.com", "Brand-new-pass").user_id == 1
    assert user.failed_login_attempts == 0

    with pytest.raises(ValidationError):
        svc.reset_password(token, "Another-pass-1")


def test_expired_reset_token_is_rejected():
    svc, repo, mailer = _reset_service(_user(1, "amy@example.com"))
    svc.request_reset("amy@example.com")
    repo.reset_tokens[0].expires_at = now_utc() - timedelta(minutes=1)

    with pytest.raises(ValidationError) as exc:
        svc.reset_password(_emailed_token(mailer), "Brand-new-pass")
    assert "expired" in exc.value.message


def test_reset_request_for_unknown_email_sends_nothing():
    svc, repo, mailer = _reset_service(_user(1, "amy@example.com"))
    svc.request_reset("nobody@example.com")
    assert mailer.sent == []
    assert repo.reset_tokens == []


def _actor(user: User) -> SessionUser:
    return SessionUser(user_id=user.id, email=user.email, full_name=user.full_name, role=UserRole(user.role))


def test_delete_user_guards():
    admin = _user(1, "admin@example.com", role=UserRole.ADMIN)
    owner = _user(2, "owner@example.com", role=UserRole.SUPER_ADMIN)
    amy = _user(3, "amy@example.com")
    svc = UserService(InMemoryUsers({u.id: u for u in (admin, owner, amy)}), InMemoryRoles(), RecordingAudit(), nullcontext)

    with pytest.raises(ValidationError) as own:
        svc.delete_user(_actor(admin), 1)
    assert "own account" in own.value.message
    with pytest.raises(ValidationError) as sup:
        svc.delete_user(_actor(admin), 2)
    assert "super admin" in sup.value.message

    svc.delete_user(_actor(admin), 3)
    assert amy.deleted_at is not None
    assert amy.active is False


class BrokenMailer:
    def send(self, **kwargs):
        raise RuntimeError("SES unavailable")


def test_resend_invite_issues_a_new_temp_password():
    admin = _user(1, "admin@example.com", role=UserRole.ADMIN)
    amy = _user(3, "amy@example.com")
    mailer = RecordingMailer()
    svc = UserService(
        InMemoryUsers({u.id: u for u in (admin, amy)}),
        InMemoryRoles(),
        RecordingAudit(),
        nullcontext,
        mailer=mailer,
        app_url="https://app.test/",
    )

    result = svc.resend_invite(_actor(admin), 3)

    assert result["email_sent"] is True
    assert "temp_password" not in result
    assert amy.must_change_password is True
    assert amy.temp_password_expires_at > now_utc()
    html = mailer.sent[0]["html"]
    assert "https://app.test/login" in html
    temp = re.search(r"<strong>(.+?)</strong>", html).group(1)
    assert _service(amy).login("amy@example.com", temp).must_change_password is True


def test_resend_invite_hands_back_password_when_email_fails():
    admin = _user(1, "admin@example.com", role=UserRole.ADMIN)
    amy = _user(3, "amy@example.com")
    svc = UserService(
        InMemoryUsers({u.id: u for u in (admin, amy)}), InMemoryRoles(), RecordingAudit(), nullcontext, mailer=BrokenMailer()
    )

    result = svc.resend_invite(_actor(admin), 3)

    assert result["email_sent"] is False
    assert result["temp_password"]


def test_resend_invite_unknown_user():
    admin = _user(1, "admin@example.com", role=UserRole.ADMIN)
    svc = UserService(InMemoryUsers({1: admin}), InMemoryRoles(), RecordingAudit(), nullcontext, mailer=RecordingMailer())
    with pytest.raises(NotFoundError):
        svc.resend_invite(_actor(admin), 42)
