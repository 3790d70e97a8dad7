from __future__ import annotations

from flask import Flask, g, request

from ..common.validators import parse_bool
from ..common.web import ok, permission_required, read_json, uploaded_file
from ..container import Container
from .service import DirectoryImporter, DirectoryService


def register(app: Flask, container: Container) -> None:
    def crud(prefix: str, perm: str, service: DirectoryService) -> None:
        """Register list/get/create/update/delete for one directory entity."""

        @app.route(f"/api/{prefix}", methods=["GET"], endpoint=f"{prefix}_list")
        @permission_required(f"{perm}.view")
        def list_view():
            return ok(
                service.list(
                    active_only=parse_bool(request.args.get("active_only")),
                    search=request.args.get("search") or None,
                )
            )

        @app.route(f"/api/{prefix}/<int:record_id>", methods=["GET"], endpoint=f"{prefix}_get")
        @permission_required(f"{perm}.view")
        def get_view(record_id: int):
            return ok(service.get(record_id).to_dict())

        @app.route(f"/api/{prefix}", methods=["POST"], endpoint=f"{prefix}_create")
        @permission_required(f"{perm}.create")
        def create_view():
            return ok(service.create(g.current_user, read_json()).to_dict(), 201)

        @app.route(f"/api/{prefix}/<int:record_id>", methods=["PUT", "PATCH"], endpoint=f"{prefix}_update")
        @permission_required(f"{perm}.update")
        def update_view(record_id: int):
            return ok(service.update(g.current_user, record_id, read_json()).to_dict())

        @app.route(f"/api/{prefix}/<int:record_id>", methods=["DELETE"], endpoint=f"{prefix}_delete")
        @permission_required(f"{perm}.delete")
        def delete_view(record_id: int):
            service.delete(g.current_user, record_id)
            return ok()

    def bulk_import(prefix: str, perm: str, importer: DirectoryImporter) -> None:
        @app.route(f"/api/{prefix}/import", methods=["POST"], endpoint=f"{prefix}_import")
        @permission_required(f"{perm}.create")
        def import_view():
            f = uploaded_file()
            return ok(importer.import_file(g.current_user, f.filename, f.read()))

    crud("clients", "clients", container.client_service)
    crud("providers", "providers", container.provider_service)
    crud("insurance", "insurance", container.insurance_service)
    crud("bcbas", "bcbas", container.bcba_service)

    bulk_import("clients", "clients", container.client_importer)
    bulk_import("providers", "providers", container.provider_importer)
