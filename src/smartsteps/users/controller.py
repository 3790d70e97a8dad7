from __future__ import annotations

from flask import Flask, g, request, session

from ..common.web import login_required, ok, page_args, permission_required, read_json
from ..container import Container
from ..permissions.catalog import DASHBOARD_SECTIONS, all_permission_names
from ..permissions.resolver import can_see_dashboard_section


def register(app: Flask, container: Container) -> None:
    def _session_payload(user) -> dict:
        return {
            "id": user.user_id,
            "email": user.email,
            "full_name": user.full_name,
            "role": user.role.value,
            "custom_role_id": user.custom_role_id,
            "must_change_password": user.must_change_password,
        }

    # ---- auth ----

    @app.route("/api/auth/login", methods=["POST"], endpoint="auth_login")
    def auth_login():
        payload = read_json()
        user = container.auth_service.login(payload.get("email") or "", payload.get("password") or "")
        session.clear()
        session["user_id"] = user.user_id
        session["role"] = user.role.value
        return ok(_session_payload(user))

    @app.route("/api/auth/logout", methods=["POST"], endpoint="auth_logout")
    def auth_logout():
        session.clear()
        return ok()

    @app.route("/api/auth/me", methods=["GET"], endpoint="auth_me")
    @login_required
    def auth_me():
        return ok(_session_payload(g.current_user))

    @app.route("/api/auth/change-password", methods=["POST"], endpoint="auth_change_password")
    @login_required
    def auth_change_password():
        payload = read_json()
        container.auth_service.change_password(
            g.current_user,
            current_password=payload.get("current_password") or "",
            new_password=payload.get("new_password") or "",
        )
        return ok()

    @app.route("/api/auth/forgot-password", methods=["POST"], endpoint="auth_forgot_password")
    def auth_forgot_password():
        container.password_reset_service.request_reset(read_json().get("email") or "")
        return ok(message="If the account exists, a reset link has been sent")

    @app.route("/api/auth/reset-password", methods=["POST"], endpoint="auth_reset_password")
    def auth_reset_password():
        payload = read_json()
        container.password_reset_service.reset_password(payload.get("token") or "", payload.get("password") or "")
        return ok()

    # ---- permissions ----

    @app.route("/api/user/permissions", methods=["GET"], endpoint="user_permissions")
    @login_required
    def user_permissions():
        user = g.current_user
        return ok(
            {
                "role": user.role.value,
                "is_admin": user.is_admin,
                "permissions": {name: flags.to_dict() for name, flags in user.permissions.items()},
                "dashboard": {s: can_see_dashboard_section(user, s) for s in DASHBOARD_SECTIONS},
            }
        )

    @app.route("/api/permissions", methods=["GET"], endpoint="permission_catalog")
    @permission_required("roles.view")
    def permission_catalog():
        return ok({"permissions": all_permission_names(), "dashboard_sections": list(DASHBOARD_SECTIONS)})

    # ---- users ----

    @app.route("/api/users", methods=["GET"], endpoint="users_list")
    @permission_required("users.view")
    def users_list():
        page, size = page_args()
        return ok(container.user_service.list_users(page=page, page_size=size, search=request.args.get("search")))

    @app.route("/api/users/<int:user_id>", methods=["GET"], endpoint="users_get")
    @permission_required("users.view")
    def users_get(user_id: int):
        return ok(container.user_service.get_user(user_id).to_dict())

    @app.route("/api/users", methods=["POST"], endpoint="users_create")
    @permission_required("users.create")
    def users_create():
        user, temp_password = container.user_service.create_user(g.current_user, read_json())
        data = user.to_dict()
        if temp_password:
            data["temp_password"] = temp_password
        return ok(data, 201)

    @app.route("/api/users/<int:user_id>", methods=["PUT", "PATCH"], endpoint="users_update")
    @permission_required("users.update")
    def users_update(user_id: int):
        return ok(container.user_service.update_user(g.current_user, user_id, read_json()).to_dict())

    @app.route("/api/users/<int:user_id>", methods=["DELETE"], endpoint="users_delete")
    @permission_required("users.delete")
    def users_delete(user_id: int):
        container.user_service.delete_user(g.current_user, user_id)
        return ok()

    @app.route("/api/users/<int:user_id>/resend-invite", methods=["POST"], endpoint="users_resend_invite")
    @permission_required("users.update")
    def users_resend_invite(user_id: int):
        return ok(container.user_service.resend_invite(g.current_user, user_id))

    # ---- roles ----

    @app.route("/api/roles", methods=["GET"], endpoint="roles_list")
    @permission_required("roles.view")
    def roles_list():
        return ok(container.role_service.list_roles())

    @app.route("/api/roles/<int:role_id>", methods=["GET"], endpoint="roles_get")
    @permission_required("roles.view")
    def roles_get(role_id: int):
        return ok(container.role_service.get_role(role_id).to_dict())

    @app.route("/api/roles", methods=["POST"], endpoint="roles_create")
    @permission_required("roles.create")
    def roles_create():
        return ok(container.role_service.create_role(g.current_user, read_json()).to_dict(), 201)

    @app.route("/api/roles/<int:role_id>", methods=["PUT", "PATCH"], endpoint="roles_update")
    @permission_required("roles.update")
    def roles_update(role_id: int):
        return ok(container.role_service.update_role(g.current_user, role_id, read_json()).to_dict())

    @app.route("/api/roles/<int:role_id>", methods=["DELETE"], endpoint="roles_delete")
    @permission_required("roles.delete")
    def roles_delete(role_id: int):
        container.role_service.delete_role(g.current_user, role_id)
        return ok()

    @app.route("/api/roles/<int:role_id>/dashboard-visibility", methods=["PUT"], endpoint="roles_dashboard_visibility")
    @permission_required("roles.update")
    def roles_dashboard_visibility(role_id: int):
        payload = read_json()
        sections = payload.get("sections", payload)
        role = container.role_service.set_dashboard_visibility(g.current_user, role_id, sections)
        return ok(role.to_dict())
