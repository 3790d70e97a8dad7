from __future__ import annotations

from flask import Flask, g, request

from ..common.web import ok, permission_required, read_json
from ..container import Container
from ..core.enums import EmailContext


def register(app: Flask, container: Container) -> None:
    service = container.email_queue_service

    def routes(prefix: str, context: EmailContext, view_perm: str, send_perm: str, delete_perm: str) -> None:
        name = prefix.strip("/").replace("/", "_").replace("-", "_")

        @app.route(prefix, methods=["GET"], endpoint=f"{name}_list")
        @permission_required(view_perm)
        def list_view():
            return ok(service.list(context=context, status=request.args.get("status")))

        @app.route(f"{prefix}/send-batch", methods=["POST"], endpoint=f"{name}_send_batch")
        @permission_required(send_perm)
        def send_batch_view():
            return ok(service.send_batch(g.current_user, context))

        @app.route(f"{prefix}/send-selected", methods=["POST"], endpoint=f"{name}_send_selected")
        @permission_required(send_perm)
        def send_selected_view():
            return ok(service.send_batch(g.current_user, context, read_json().get("ids")))

        @app.route(f"{prefix}/resend", methods=["POST"], endpoint=f"{name}_resend")
        @permission_required(send_perm)
        def resend_view():
            return ok(service.resend(g.current_user, read_json().get("ids"), context=context))

        @app.route(f"{prefix}/<int:item_id>", methods=["DELETE"], endpoint=f"{name}_delete")
        @permission_required(delete_perm)
        def delete_view(item_id: int):
            service.delete(g.current_user, item_id, context=context)
            return ok()

        @app.route(f"{prefix}/bulk-delete", methods=["POST"], endpoint=f"{name}_bulk_delete")
        @permission_required(delete_perm)
        def bulk_delete_view():
            return ok(service.bulk_delete(g.current_user, read_json().get("ids"), context=context))

    routes("/api/email-queue", EmailContext.MAIN, "emailQueue.view", "emailQueue.sendBatch", "emailQueue.delete")
    routes(
        "/api/community/email-queue",
        EmailContext.COMMUNITY,
        "community.emailQueue.view",
        "community.emailQueue.sendBatch",
        "community.emailQueue.sendBatch",
    )
