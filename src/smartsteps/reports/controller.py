from __future__ import annotations

from flask import Flask, g, request

from ..common.datetime_utils import coerce_date, optional_date
from ..common.web import admin_required, arg_int, login_required, ok, permission_required
from ..container import Container
from ..core.exceptions import AuthorizationError, ValidationError
from ..permissions.resolver import has_permission
from .service import report_csv, report_xlsx

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _csv_arg(name: str) -> list[str]:
    return [part.strip() for part in (request.args.get(name) or "").split(",") if part.strip()]


def register(app: Flask, container: Container) -> None:
    service = container.report_service

    @app.route("/api/dashboard/stats", methods=["GET"], endpoint="dashboard_stats")
    @permission_required("reports.view")
    def dashboard_stats():
        return ok(service.dashboard_stats())

    @app.route("/api/reports/timesheets", methods=["GET"], endpoint="reports_timesheets")
    @permission_required("reports.view")
    def reports_timesheets():
        start = coerce_date(request.args.get("start_date"), "start_date")
        end = coerce_date(request.args.get("end_date"), "end_date")
        data = service.build_timesheet_report(
            start=start,
            end=end,
            client_id=arg_int("client_id"),
            provider_id=arg_int("provider_id"),
        )
        fmt = (request.args.get("format") or "json").lower()
        if fmt == "json":
            return ok({"rows": data.rows, "summary": data.summary})

        if not has_permission(g.current_user, "reports.export"):
            raise AuthorizationError("Forbidden: Insufficient permissions")
        stem = f"timesheets_{start.strftime('%Y%m%d')}_{end.strftime('%Y%m%d')}"
        if fmt == "csv":
            return app.response_class(
                report_csv(data),
                mimetype="text/csv",
                headers={"Content-Disposition": f"attachment; filename={stem}.csv"},
            )
        if fmt == "xlsx":
            return app.response_class(
                report_xlsx(data),
                mimetype=XLSX_MIME,
                headers={"Content-Disposition": f"attachment; filename={stem}.xlsx"},
            )
        raise ValidationError("format must be json, csv or xlsx")

    @app.route("/api/reports/detailed", methods=["GET"], endpoint="reports_detailed")
    @permission_required("reports.view")
    def reports_detailed():
        return ok(
            service.detailed_report(
                start=optional_date(request.args.get("start_date"), "start_date"),
                end=optional_date(request.args.get("end_date"), "end_date"),
                provider_id=arg_int("provider_id"),
                client_id=arg_int("client_id"),
                bcba_id=arg_int("bcba_id"),
                insurance_id=arg_int("insurance_id"),
                statuses=_csv_arg("status"),
                service_types=_csv_arg("service_type"),
                grouping=request.args.get("grouping") or None,
            )
        )

    @app.route("/api/analytics", methods=["GET"], endpoint="analytics")
    @admin_required
    def analytics():
        return ok(
            service.analytics(
                start=optional_date(request.args.get("start_date"), "start_date"),
                end=optional_date(request.args.get("end_date"), "end_date"),
                provider_id=arg_int("provider_id"),
                client_id=arg_int("client_id"),
                bcba_id=arg_int("bcba_id"),
                insurance_id=arg_int("insurance_id"),
            )
        )

    @app.route("/api/search", methods=["GET"], endpoint="search")
    @login_required
    def search():
        return ok(container.search_service.search(g.current_user, request.args.get("q")))
