from __future__ import annotations

import json

from flask import Flask, Response, g, request

from ..common.datetime_utils import optional_date, parse_year_month
from ..common.validators import parse_bool, parse_int
from ..common.web import arg_int, ok, permission_required, read_json, uploaded_file
from ..container import Container
from ..core.exceptions import ValidationError
from ..pdf.payroll_pdf import render_employee_month_pdf, render_payroll_run_pdf

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _mapping_from_form() -> dict:
    raw = request.form.get("mapping")
    if not raw:
        raise ValidationError("File and mapping are required")
    try:
        mapping = json.loads(raw)
    except ValueError:
        raise ValidationError("mapping must be valid JSON")
    if not isinstance(mapping, dict):
        raise ValidationError("mapping must be a JSON object")
    return mapping


def register(app: Flask, container: Container) -> None:
    employees = container.payroll_employee_service
    imports = container.payroll_import_service
    runs = container.payroll_run_service

    # ---- employees ----

    @app.route("/api/payroll/employees", methods=["GET"], endpoint="payroll_employees_list")
    @permission_required("payroll.view")
    def payroll_employees_list():
        return ok(employees.list(active_only=parse_bool(request.args.get("active_only"))))

    @app.route("/api/payroll/employees/<int:employee_id>", methods=["GET"], endpoint="payroll_employees_get")
    @permission_required("payroll.view")
    def payroll_employees_get(employee_id: int):
        return ok(employees.get(employee_id).to_dict())

    @app.route("/api/payroll/employees", methods=["POST"], endpoint="payroll_employees_create")
    @permission_required("payroll.create")
    def payroll_employees_create():
        return ok(employees.create(g.current_user, read_json()).to_dict(), 201)

    @app.route("/api/payroll/employees/<int:employee_id>", methods=["PUT", "PATCH"], endpoint="payroll_employees_update")
    @permission_required("payroll.update")
    def payroll_employees_update(employee_id: int):
        return ok(employees.update(g.current_user, employee_id, read_json()).to_dict())

    @app.route("/api/payroll/employees/<int:employee_id>", methods=["DELETE"], endpoint="payroll_employees_delete")
    @permission_required("payroll.delete")
    def payroll_employees_delete(employee_id: int):
        employees.delete(g.current_user, employee_id)
        return ok()

    @app.route("/api/payroll/employees/<int:employee_id>/report", methods=["GET"], endpoint="payroll_employee_report")
    @permission_required("payroll.view")
    def payroll_employee_report(employee_id: int):
        year = parse_int(request.args.get("year"), "year")
        month = parse_int(request.args.get("month"), "month")
        return ok(employees.monthly_report(employee_id, year, month))

    @app.route("/api/payroll/reports/employee/<int:employee_id>/pdf", methods=["GET"], endpoint="payroll_employee_pdf")
    @permission_required("payroll.view")
    def payroll_employee_pdf(employee_id: int):
        year, month = parse_year_month(request.args.get("month"))
        statement = employees.month_statement(employee_id, year, month)
        stem = f"employee-monthly-{'-'.join(statement['employee'].display_name.split())}-{year}-{month:02d}"
        return Response(
            render_employee_month_pdf(statement),
            mimetype="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{stem}.pdf"'},
        )

    @app.route("/api/payroll/analytics", methods=["GET"], endpoint="payroll_analytics")
    @permission_required("payroll.view")
    def payroll_analytics():
        return ok(
            runs.analytics(
                start=optional_date(request.args.get("start_date"), "start_date"),
                end=optional_date(request.args.get("end_date"), "end_date"),
                run_id=arg_int("run_id"),
                employee_id=arg_int("employee_id"),
                paid_status=request.args.get("paid_status") or None,
            )
        )

    # ---- imports ----

    @app.route("/api/payroll/import/preview", methods=["POST"], endpoint="payroll_import_preview")
    @permission_required("payroll.import_logs")
    def payroll_import_preview():
        f = uploaded_file()
        return ok(imports.preview(f.filename, f.read()))

    @app.route("/api/payroll/import/process", methods=["POST"], endpoint="payroll_import_process")
    @permission_required("payroll.import_logs")
    def payroll_import_process():
        f = uploaded_file()
        mapping = _mapping_from_form()
        result = imports.process(
            g.current_user,
            f.filename,
            f.read(),
            mapping,
            timezone=request.form.get("timezone") or None,
        )
        return ok(result, 201)

    @app.route("/api/payroll/imports", methods=["GET"], endpoint="payroll_imports_list")
    @permission_required("payroll.view")
    def payroll_imports_list():
        return ok(imports.list())

    @app.route("/api/payroll/imports/<int:import_id>", methods=["GET"], endpoint="payroll_imports_get")
    @permission_required("payroll.view")
    def payroll_imports_get(import_id: int):
        return ok(imports.get(import_id).to_dict(with_rows=True))

    @app.route("/api/payroll/imports/<int:import_id>/rows/<int:row_id>", methods=["PATCH"], endpoint="payroll_imports_link_row")
    @permission_required("payroll.update")
    def payroll_imports_link_row(import_id: int, row_id: int):
        row = imports.link_row(g.current_user, import_id, row_id, read_json().get("employee_id"))
        return ok(row.to_dict())

    @app.route("/api/payroll/imports/<int:import_id>", methods=["DELETE"], endpoint="payroll_imports_delete")
    @permission_required("payroll.delete")
    def payroll_imports_delete(import_id: int):
        imports.delete(g.current_user, import_id)
        return ok()

    # ---- runs ----

    @app.route("/api/payroll/runs", methods=["GET"], endpoint="payroll_runs_list")
    @permission_required("payroll.view")
    def payroll_runs_list():
        return ok(runs.list(status=request.args.get("status") or None))

    @app.route("/api/payroll/runs", methods=["POST"], endpoint="payroll_runs_create")
    @permission_required("payroll.runs")
    def payroll_runs_create():
        return ok(runs.create(g.current_user, read_json()).to_dict(with_lines=True), 201)

    @app.route("/api/payroll/runs/<int:run_id>", methods=["GET"], endpoint="payroll_runs_get")
    @permission_required("payroll.view")
    def payroll_runs_get(run_id: int):
        return ok(runs.get(run_id).to_dict(with_lines=True))

    @app.route("/api/payroll/runs/<int:run_id>/approve", methods=["POST"], endpoint="payroll_runs_approve")
    @permission_required("payroll.runs")
    def payroll_runs_approve(run_id: int):
        return ok(runs.approve(g.current_user, run_id).to_dict(with_lines=True))

    @app.route("/api/payroll/runs/<int:run_id>/lines/<int:line_id>/payments", methods=["POST"], endpoint="payroll_runs_payment")
    @permission_required("payroll.runs")
    def payroll_runs_payment(run_id: int, line_id: int):
        return ok(runs.add_payment(g.current_user, run_id, line_id, read_json()).to_dict(), 201)

    @app.route("/api/payroll/runs/<int:run_id>/export/excel", methods=["GET"], endpoint="payroll_runs_export_excel")
    @permission_required("payroll.view")
    def payroll_runs_export_excel(run_id: int):
        return Response(
            runs.export_excel(run_id),
            mimetype=XLSX_MIME,
            headers={"Content-Disposition": f'attachment; filename="payroll-run-{run_id}.xlsx"'},
        )

    @app.route("/api/payroll/runs/<int:run_id>/export/pdf", methods=["GET"], endpoint="payroll_runs_export_pdf")
    @permission_required("payroll.view")
    def payroll_runs_export_pdf(run_id: int):
        return Response(
            render_payroll_run_pdf(runs.get(run_id)),
            mimetype="application/pdf",
            headers={"Content-Disposition": f'inline; filename="payroll-run-{run_id}.pdf"'},
        )
