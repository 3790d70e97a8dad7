from __future__ import annotations

from flask import Flask, Response, current_app, g, request

from ..common.validators import parse_bool
from ..common.web import arg_int, ok, page_args, permission_required, read_json
from ..container import Container
from ..pdf.community_pdf import render_community_invoice_pdf


def register(app: Flask, container: Container) -> None:
    service = container.community_service

    def _public_url(invoice) -> str | None:
        if not invoice.view_token:
            return None
        base = current_app.config.get("APP_URL", "").rstrip("/")
        return f"{base}/api/public/community/invoice/{invoice.id}?token={invoice.view_token}"

    def _pdf(invoice) -> Response:
        return Response(
            render_community_invoice_pdf(invoice, public_url=_public_url(invoice)),
            mimetype="application/pdf",
            headers={"Content-Disposition": f'inline; filename="community-invoice-{invoice.id}.pdf"'},
        )

    # ---- clients ----

    @app.route("/api/community/clients", methods=["GET"], endpoint="community_clients_list")
    @permission_required("community.clients.view")
    def community_clients_list():
        return ok(service.list_clients())

    @app.route("/api/community/clients/<int:client_id>", methods=["GET"], endpoint="community_clients_get")
    @permission_required("community.clients.view")
    def community_clients_get(client_id: int):
        return ok(service.get_client(client_id).to_dict())

    @app.route("/api/community/clients", methods=["POST"], endpoint="community_clients_create")
    @permission_required("community.clients.create")
    def community_clients_create():
        return ok(service.create_client(g.current_user, read_json()).to_dict(), 201)

    @app.route("/api/community/clients/<int:client_id>", methods=["PUT", "PATCH"], endpoint="community_clients_update")
    @permission_required("community.clients.update")
    def community_clients_update(client_id: int):
        return ok(service.update_client(g.current_user, client_id, read_json()).to_dict())

    @app.route("/api/community/clients/<int:client_id>", methods=["DELETE"], endpoint="community_clients_delete")
    @permission_required("community.clients.delete")
    def community_clients_delete(client_id: int):
        service.delete_client(g.current_user, client_id)
        return ok()

    # ---- classes ----

    @app.route("/api/community/classes", methods=["GET"], endpoint="community_classes_list")
    @permission_required("community.classes.view")
    def community_classes_list():
        return ok(service.list_classes(active_only=parse_bool(request.args.get("active_only"))))

    @app.route("/api/community/classes/<int:class_id>", methods=["GET"], endpoint="community_classes_get")
    @permission_required("community.classes.view")
    def community_classes_get(class_id: int):
        return ok(service.get_class(class_id).to_dict())

    @app.route("/api/community/classes", methods=["POST"], endpoint="community_classes_create")
    @permission_required("community.classes.create")
    def community_classes_create():
        return ok(service.create_class(g.current_user, read_json()).to_dict(), 201)

    @app.route("/api/community/classes/<int:class_id>", methods=["PUT", "PATCH"], endpoint="community_classes_update")
    @permission_required("community.classes.update")
    def community_classes_update(class_id: int):
        return ok(service.update_class(g.current_user, class_id, read_json()).to_dict())

    @app.route("/api/community/classes/<int:class_id>", methods=["DELETE"], endpoint="community_classes_delete")
    @permission_required("community.classes.delete")
    def community_classes_delete(class_id: int):
        service.delete_class(g.current_user, class_id)
        return ok()

    # ---- invoices ----

    @app.route("/api/community/invoices", methods=["GET"], endpoint="community_invoices_list")
    @permission_required("community.invoices.view")
    def community_invoices_list():
        page, size = page_args()
        return ok(
            service.list_invoices(
                page=page,
                page_size=size,
                status=request.args.get("status") or None,
                client_id=arg_int("client_id"),
            )
        )

    @app.route("/api/community/invoices/<int:invoice_id>", methods=["GET"], endpoint="community_invoices_get")
    @permission_required("community.invoices.view")
    def community_invoices_get(invoice_id: int):
        return ok(service.get_invoice(invoice_id).to_dict())

    @app.route("/api/community/invoices", methods=["POST"], endpoint="community_invoices_create")
    @permission_required("community.invoices.create")
    def community_invoices_create():
        return ok(service.create_invoice(g.current_user, read_json()).to_dict(), 201)

    @app.route("/api/community/invoices/<int:invoice_id>", methods=["PUT", "PATCH"], endpoint="community_invoices_update")
    @permission_required("community.invoices.update")
    def community_invoices_update(invoice_id: int):
        return ok(service.update_invoice(g.current_user, invoice_id, read_json()).to_dict())

    @app.route("/api/community/invoices/<int:invoice_id>", methods=["DELETE"], endpoint="community_invoices_delete")
    @permission_required("community.invoices.delete")
    def community_invoices_delete(invoice_id: int):
        service.delete_invoice(g.current_user, invoice_id)
        return ok()

    @app.route("/api/community/invoices/<int:invoice_id>/approve", methods=["POST"], endpoint="community_invoices_approve")
    @permission_required("community.invoices.approve")
    def community_invoices_approve(invoice_id: int):
        return ok(service.approve_invoice(g.current_user, invoice_id).to_dict())

    @app.route("/api/community/invoices/<int:invoice_id>/reject", methods=["POST"], endpoint="community_invoices_reject")
    @permission_required("community.invoices.approve")
    def community_invoices_reject(invoice_id: int):
        return ok(service.reject_invoice(g.current_user, invoice_id, read_json().get("reason")).to_dict())

    @app.route("/api/community/invoices/<int:invoice_id>/pdf", methods=["GET"], endpoint="community_invoices_pdf")
    @permission_required("community.invoices.view")
    def community_invoices_pdf(invoice_id: int):
        return _pdf(service.get_invoice(invoice_id))

    @app.route("/api/public/community/invoice/<int:invoice_id>", methods=["GET"], endpoint="public_community_invoice")
    def public_community_invoice(invoice_id: int):
        return ok(service.get_public(invoice_id, request.args.get("token")).to_dict())

    @app.route("/api/public/community/invoice/<int:invoice_id>/pdf", methods=["GET"], endpoint="public_community_invoice_pdf")
    def public_community_invoice_pdf(invoice_id: int):
        return _pdf(service.get_public(invoice_id, request.args.get("token")))
