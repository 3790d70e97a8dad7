from __future__ import annotations

from flask import Flask, g, request

from ..common.web import admin_required, arg_int, ok, page_args, permission_required
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/api/admin/activity", methods=["GET"], endpoint="admin_activity")
    @permission_required("auditLogs.view")
    def admin_activity():
        page, size = page_args()
        data = container.audit.list_activity(
            page=page,
            page_size=size,
            entity_type=request.args.get("entity_type") or None,
            action=request.args.get("action") or None,
            user_id=arg_int("user_id"),
        )
        return ok(data)

    @app.route("/api/admin/activity/unread-count", methods=["GET"], endpoint="admin_activity_unread")
    @admin_required
    def admin_activity_unread():
        user = container.user_service.get_user(g.current_user.user_id)
        return ok({"count": container.audit.unread_count(user.last_seen_activity_at)})

    @app.route("/api/admin/activity/mark-seen", methods=["POST"], endpoint="admin_activity_mark_seen")
    @admin_required
    def admin_activity_mark_seen():
        seen = container.user_service.mark_activity_seen(g.current_user)
        return ok({"last_seen_activity_at": seen.isoformat()})
