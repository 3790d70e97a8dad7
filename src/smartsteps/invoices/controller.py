from __future__ import annotations

from typing import Optional

from flask import Flask, Response, current_app, g, request

from ..common.web import arg_int, login_required, ok, page_args, permission_required, read_json
from ..container import Container
from ..core.exceptions import AuthorizationError
from ..permissions.resolver import has_permission
from ..pdf.invoice_pdf import render_invoice_pdf


def register(app: Flask, container: Container) -> None:
    service = container.invoice_service

    def _public_url(invoice) -> Optional[str]:
        if not invoice.view_token:
            return None
        base = current_app.config.get("APP_URL", "").rstrip("/")
        return f"{base}/api/public/invoice/{invoice.id}?token={invoice.view_token}"

    def _pdf_response(invoice) -> Response:
        return Response(
            render_invoice_pdf(invoice, public_url=_public_url(invoice)),
            mimetype="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{invoice.invoice_number}.pdf"'},
        )

    @app.route("/api/invoices", methods=["GET"], endpoint="invoices_list")
    @permission_required("invoices.view")
    def invoices_list():
        page, size = page_args()
        return ok(
            service.list(
                page=page,
                page_size=size,
                status=request.args.get("status") or None,
                client_id=arg_int("client_id"),
            )
        )

    @app.route("/api/invoices/generate", methods=["POST"], endpoint="invoices_generate")
    @app.route("/api/timesheets/generate-invoice", methods=["POST"], endpoint="timesheets_generate_invoice")
    @login_required
    def invoices_generate():
        user = g.current_user
        can_view = has_permission(user, "timesheets.view") or has_permission(user, "bcbaTimesheets.view")
        if not (can_view and has_permission(user, "invoices.create")):
            raise AuthorizationError("Forbidden: Insufficient permissions")
        return ok(service.generate(user, read_json().get("timesheet_ids")))

    @app.route("/api/invoices/<int:invoice_id>", methods=["GET"], endpoint="invoices_get")
    @permission_required("invoices.view")
    def invoices_get(invoice_id: int):
        return ok(service.get(invoice_id).to_dict(detail=True))

    @app.route("/api/invoices/<int:invoice_id>", methods=["PUT", "PATCH"], endpoint="invoices_update")
    @permission_required("invoices.update")
    def invoices_update(invoice_id: int):
        return ok(service.update(g.current_user, invoice_id, read_json()).to_dict(detail=True))

    @app.route("/api/invoices/<int:invoice_id>", methods=["DELETE"], endpoint="invoices_delete")
    @permission_required("invoices.delete")
    def invoices_delete(invoice_id: int):
        service.delete(g.current_user, invoice_id)
        return ok()

    @app.route("/api/invoices/<int:invoice_id>/approve", methods=["POST"], endpoint="invoices_approve")
    @permission_required("invoices.approve")
    def invoices_approve(invoice_id: int):
        invoice = service.approve(g.current_user, invoice_id)
        data = invoice.to_dict(detail=True)
        data["public_url"] = _public_url(invoice)
        return ok(data)

    @app.route("/api/invoices/<int:invoice_id>/payments", methods=["POST"], endpoint="invoices_payment")
    @permission_required("invoices.update")
    def invoices_payment(invoice_id: int):
        return ok(service.add_payment(g.current_user, invoice_id, read_json()).to_dict(), 201)

    @app.route("/api/invoices/<int:invoice_id>/adjustments", methods=["POST"], endpoint="invoices_adjustment")
    @permission_required("invoices.update")
    def invoices_adjustment(invoice_id: int):
        return ok(service.add_adjustment(g.current_user, invoice_id, read_json()).to_dict(), 201)

    @app.route("/api/invoices/<int:invoice_id>/pdf", methods=["GET"], endpoint="invoices_pdf")
    @permission_required("invoices.view")
    def invoices_pdf(invoice_id: int):
        return _pdf_response(service.get(invoice_id))

    # no login: the view token is the credential

    @app.route("/api/public/invoice/<int:invoice_id>", methods=["GET"], endpoint="public_invoice")
    def public_invoice(invoice_id: int):
        invoice = service.get_public(invoice_id, request.args.get("token"))
        return ok(invoice.to_dict(detail=True))

    @app.route("/api/public/invoice/<int:invoice_id>/pdf", methods=["GET"], endpoint="public_invoice_pdf")
    def public_invoice_pdf(invoice_id: int):
        return _pdf_response(service.get_public(invoice_id, request.args.get("token")))
