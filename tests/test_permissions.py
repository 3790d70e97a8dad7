from smartsteps.core.enums import UserRole
from smartsteps.permissions.catalog import ADMIN_EXCLUDED, all_permission_names
from smartsteps.permissions.model import PermissionFlags, SessionUser
from smartsteps.permissions.resolver import can_access_route, has_permission, resolve_permissions

NAMES = all_permission_names()


def _user(role: UserRole, grants=None) -> SessionUser:
    return SessionUser(
        user_id=1,
        email="x@example.com",
        full_name="X",
        role=role,
        permissions=resolve_permissions(role, NAMES, grants),
    )


def test_catalog_has_no_duplicates_and_covers_modules():
    assert len(NAMES) == len(set(NAMES))
    for name in ("forms.delete", "community.invoices.approve", "payroll.runs", "emailQueue.sendBatch", "reports.export"):
        assert name in NAMES


def test_super_admin_passes_everything():
    user = _user(UserRole.SUPER_ADMIN)
    assert has_permission(user, "users.delete")
    assert has_permission(user, "not.in.catalog")


def test_admin_lacks_excluded_deletes():
    user = _user(UserRole.ADMIN)
    for name in ADMIN_EXCLUDED:
        assert not has_permission(user, name)
    assert has_permission(user, "clients.delete")
    assert not user.can("clients.delete", "delete")
    assert user.can("invoices.approve", "approve")


def test_basic_user_gets_timesheet_set_only():
    user = _user(UserRole.USER)
    assert has_permission(user, "timesheets.create")
    assert user.can("timesheets.create", "create")
    assert not has_permission(user, "invoices.create")
    assert not has_permission(user, "reports.view")


def test_custom_role_uses_grants_verbatim():
    user = _user(UserRole.CUSTOM, {"reports.view": PermissionFlags(can_view=True, can_export=True)})
    assert has_permission(user, "reports.view")
    assert user.can("reports.view", "export")
    assert not has_permission(user, "timesheets.view")


def test_route_access_follows_dashboard_sections():
    user = _user(UserRole.CUSTOM, {"dashboard.payroll": PermissionFlags(can_view=True)})
    assert can_access_route(user, "/payroll")
    assert not can_access_route(user, "/invoices")
    assert can_access_route(user, "/profile")
    assert can_access_route(_user(UserRole.ADMIN), "/invoices")
