from __future__ import annotations

from flask import Flask, g, request

from ..common.web import arg_int, ok, permission_required, read_json
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.form_service

    @app.route("/api/forms", methods=["GET"], endpoint="forms_list")
    @permission_required("forms.view")
    def forms_list():
        return ok(
            service.list(
                form_type=(request.args.get("type") or "").upper() or None,
                client_id=arg_int("client_id"),
                month=arg_int("month"),
                year=arg_int("year"),
            )
        )

    @app.route("/api/forms/lookup", methods=["GET"], endpoint="forms_lookup")
    @permission_required("forms.view")
    def forms_lookup():
        form = service.find(request.args)
        return ok(form.to_dict() if form else None, found=form is not None)

    @app.route("/api/forms", methods=["PUT", "POST"], endpoint="forms_upsert")
    @permission_required("forms.update")
    def forms_upsert():
        return ok(service.upsert(g.current_user, read_json()).to_dict())

    @app.route("/api/forms/<int:form_id>", methods=["DELETE"], endpoint="forms_delete")
    @permission_required("forms.delete")
    def forms_delete(form_id: int):
        service.delete(g.current_user, form_id)
        return ok()
