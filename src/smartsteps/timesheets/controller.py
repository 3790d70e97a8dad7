from __future__ import annotations

from flask import Flask, Response, g, request

from ..common.datetime_utils import optional_date
from ..common.validators import parse_bool
from ..common.web import arg_int, login_required, ok, page_args, read_json
from ..container import Container
from ..core.exceptions import ValidationError
from ..pdf.timesheet_pdf import render_timesheet_pdf
from .repository import TimesheetFilter


def register(app: Flask, container: Container) -> None:
    service = container.timesheet_service

    @app.route("/api/timesheets", methods=["GET"], endpoint="timesheets_list")
    @login_required
    def timesheets_list():
        page, size = page_args()
        raw_bcba = request.args.get("is_bcba")
        flt = TimesheetFilter(
            is_bcba=None if raw_bcba in (None, "") else parse_bool(raw_bcba),
            status=request.args.get("status") or None,
            client_id=arg_int("client_id"),
            provider_id=arg_int("provider_id"),
            start_date=optional_date(request.args.get("start_date"), "start_date"),
            end_date=optional_date(request.args.get("end_date"), "end_date"),
        )
        return ok(service.list(g.current_user, flt, page=page, page_size=size))

    @app.route("/api/timesheets/<int:timesheet_id>", methods=["GET"], endpoint="timesheets_get")
    @login_required
    def timesheets_get(timesheet_id: int):
        return ok(service.get(g.current_user, timesheet_id).to_dict())

    @app.route("/api/timesheets", methods=["POST"], endpoint="timesheets_create")
    @login_required
    def timesheets_create():
        return ok(service.create(g.current_user, read_json()).to_dict(), 201)

    @app.route("/api/timesheets/check-overlaps", methods=["POST"], endpoint="timesheets_check_overlaps")
    @login_required
    def timesheets_check_overlaps():
        conflicts = service.check_overlaps(read_json())
        return ok({"has_conflicts": bool(conflicts), "conflicts": conflicts})

    @app.route("/api/timesheets/<int:timesheet_id>", methods=["PUT", "PATCH"], endpoint="timesheets_update")
    @login_required
    def timesheets_update(timesheet_id: int):
        return ok(service.update(g.current_user, timesheet_id, read_json()).to_dict())

    @app.route("/api/timesheets/<int:timesheet_id>", methods=["DELETE"], endpoint="timesheets_delete")
    @login_required
    def timesheets_delete(timesheet_id: int):
        service.delete(g.current_user, timesheet_id)
        return ok()

    @app.route("/api/timesheets/<int:timesheet_id>/submit", methods=["POST"], endpoint="timesheets_submit")
    @login_required
    def timesheets_submit(timesheet_id: int):
        return ok(service.submit(g.current_user, timesheet_id).to_dict())

    @app.route("/api/timesheets/<int:timesheet_id>/approve", methods=["POST"], endpoint="timesheets_approve")
    @login_required
    def timesheets_approve(timesheet_id: int):
        return ok(service.approve(g.current_user, timesheet_id).to_dict())

    @app.route("/api/timesheets/<int:timesheet_id>/reject", methods=["POST"], endpoint="timesheets_reject")
    @login_required
    def timesheets_reject(timesheet_id: int):
        reason = read_json().get("reason") or read_json().get("rejection_reason")
        return ok(service.reject(g.current_user, timesheet_id, reason).to_dict())

    @app.route("/api/timesheets/batch/archive", methods=["POST"], endpoint="timesheets_batch_archive")
    @login_required
    def timesheets_batch_archive():
        return ok(service.archive(g.current_user, read_json().get("timesheet_ids")))

    @app.route("/api/timesheets/<int:timesheet_id>/pdf", methods=["GET"], endpoint="timesheets_pdf")
    @login_required
    def timesheets_pdf(timesheet_id: int):
        ts = service.get(g.current_user, timesheet_id)
        if not ts.entries:
            raise ValidationError("Timesheet has no entries")
        name = ts.timesheet_number or f"timesheet-{ts.id}"
        return Response(
            render_timesheet_pdf(ts),
            mimetype="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{name}.pdf"'},
        )
