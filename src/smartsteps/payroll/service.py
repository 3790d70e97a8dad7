from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Mapping, Optional

import pandas as pd

from ..audit.service import AuditLogger
from ..common.datetime_utils import coerce_date, month_bounds, now_utc, optional_date
from ..common.tabular import to_excel_bytes
from ..common.validators import optional_str, parse_bool, parse_decimal, parse_int, require_non_empty
from ..core.constants import PAYROLL_DUPLICATE_WINDOW_HOURS
from ..core.enums import AuditAction, PayrollRunStatus
from ..core.exceptions import NotFoundError, ValidationError
from ..permissions.model import SessionUser
from .calculator.base import PayrollCalculator
from .calculator.standard_calculator import StandardPayrollCalculator
from .model import PayrollEmployee, PayrollImport, PayrollImportRow, PayrollPayment, PayrollRun, PayrollRunLine
from .parser import ColumnMapping, extract_punches, file_hash, pair_punches, preview
from .repository import PayrollRepository

logger = logging.getLogger(__name__)

Transaction = Callable[[], AbstractContextManager]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_hours(minutes: int) -> Decimal:
    return (Decimal(minutes) / Decimal(60)).quantize(CENT, rounding=ROUND_HALF_UP)


def gross_pay(hours: Decimal, rate: Decimal) -> Decimal:
    return (Decimal(hours) * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)


PAID_STATUSES = ("unpaid", "partial", "paid")


def line_paid_status(line: PayrollRunLine) -> str:
    if Decimal(line.owed) <= 0:
        return "paid"
    return "partial" if Decimal(line.paid or 0) > 0 else "unpaid"


class PayrollEmployeeService:
    def __init__(self, repo: PayrollRepository, audit: AuditLogger, transaction: Transaction):
        self._repo = repo
        self._audit = audit
        self._tx = transaction

    def list(self, *, active_only: bool = False) -> list[dict]:
        return [e.to_dict() for e in self._repo.list_employees(active_only=active_only)]

    def get(self, employee_id: int) -> PayrollEmployee:
        employee = self._repo.get_employee(employee_id)
        if not employee:
            raise NotFoundError("Employee not found")
        return employee

    @staticmethod
    def _fields(payload: Mapping[str, Any], partial: bool) -> dict:
        out: dict[str, Any] = {}
        if not partial or "display_name" in payload:
            out["display_name"] = require_non_empty(payload.get("display_name"), "Display name")
        if not partial or "hourly_rate" in payload:
            out["hourly_rate"] = parse_decimal(payload.get("hourly_rate"), "Hourly rate", minimum=ZERO)
        if "scanner_code" in payload:
            out["scanner_code"] = optional_str(payload.get("scanner_code"))
        if "active" in payload:
            out["active"] = parse_bool(payload.get("active"))
        return out

    def create(self, actor: SessionUser, payload: Mapping[str, Any]) -> PayrollEmployee:
        fields = self._fields(payload, False)
        fields.setdefault("active", True)
        with self._tx():
            employee = self._repo.add(PayrollEmployee(**fields))
            self._audit.record(AuditAction.CREATE, "PayrollEmployee", employee.id, user_id=actor.user_id)
        return employee

    def update(self, actor: SessionUser, employee_id: int, payload: Mapping[str, Any]) -> PayrollEmployee:
        employee = self.get(employee_id)
        fields = self._fields(payload, True)
        with self._tx():
            for key, value in fields.items():
                setattr(employee, key, value)
            self._audit.record(AuditAction.UPDATE, "PayrollEmployee", employee.id, user_id=actor.user_id)
        return employee

    def delete(self, actor: SessionUser, employee_id: int) -> None:
        employee = self.get(employee_id)
        with self._tx():
            employee.soft_delete()
            self._audit.record(AuditAction.DELETE, "PayrollEmployee", employee.id, user_id=actor.user_id)

    def monthly_report(self, employee_id: int, year: int, month: int) -> dict:
        """Worked days, hours and gross for one employee in one calendar month."""
        employee = self.get(employee_id)
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
        start, end = month_bounds(year, month)
        rows = self._repo.employee_rows(employee.id, start, end)

        days: dict[str, int] = {}
        for row in rows:
            key = row.work_date.isoformat()
            days[key] = days.get(key, 0) + int(row.minutes or 0)
        total_minutes = sum(days.values())
        hours = to_hours(total_minutes)
        lines = self._repo.employee_lines(employee.id, start, end)
        return {
            "employee": employee.to_dict(),
            "year": year,
            "month": month,
            "days": [{"date": d, "minutes": m, "hours": float(to_hours(m))} for d, m in sorted(days.items())],
            "total_minutes": total_minutes,
            "total_hours": float(hours),
            "gross": float(gross_pay(hours, Decimal(employee.hourly_rate or 0))),
            "paid": float(sum((Decimal(line.paid or 0) for line in lines), ZERO)),
        }

    def month_statement(self, employee_id: int, year: int, month: int) -> dict:
        """Run lines overlapping the month with their payments, for the employee PDF."""
        employee = self.get(employee_id)
        start, end = month_bounds(year, month)
        lines = self._repo.employee_lines(employee.id, start, end)
        payments = sorted(
            (p for line in lines for p in line.payments),
            key=lambda p: (p.paid_on, p.id),
        )
        gross = sum((Decimal(line.gross) for line in lines), ZERO)
        paid = sum((Decimal(p.amount) for p in payments), ZERO)
        return {
            "employee": employee,
            "year": year,
            "month": month,
            "period_start": start,
            "period_end": end,
            "lines": lines,
            "payments": payments,
            "total_hours": sum((Decimal(line.hours) for line in lines), ZERO),
            "gross": gross,
            "paid": paid,
            "owed": gross - paid,
        }


class PayrollImportService:
    """Upload time clock exports and turn scanner punches into worked shifts."""

    def __init__(
        self,
        repo: PayrollRepository,
        audit: AuditLogger,
        transaction: Transaction,
        *,
        calculator: Optional[PayrollCalculator] = None,
        default_timezone: str = "America/New_York",
    ):
        self._repo = repo
        self._audit = audit
        self._tx = transaction
        self._calculator = calculator or StandardPayrollCalculator()
        self._default_timezone = default_timezone

    def preview(self, filename: str, content: bytes) -> dict:
        return preview(filename, content)

    def process(
        self,
        actor: SessionUser,
        filename: str,
        content: bytes,
        mapping_payload: Mapping[str, Any],
        *,
        timezone: Optional[str] = None,
    ) -> dict:
        mapping = ColumnMapping.from_payload(mapping_payload)
        since = now_utc() - timedelta(hours=PAYROLL_DUPLICATE_WINDOW_HOURS)
        existing = self._repo.find_recent_import(filename, since)
        if existing:
            raise ValidationError("This file has already been imported", details={"import_id": existing.id})

        parsed = extract_punches(filename, content, mapping)
        pairs = pair_punches(parsed.punches)

        with self._tx():
            record = self._repo.add(
                PayrollImport(
                    file_name=filename,
                    file_hash=file_hash(content),
                    file_size=len(content),
                    row_count=parsed.row_count,
                    imported_rows=len(parsed.punches),
                    skipped_rows=parsed.skipped,
                    timezone=timezone or self._default_timezone,
                    created_by_id=actor.user_id,
                )
            )
            matched: dict[str, Optional[PayrollEmployee]] = {}
            for pair, signature in pairs:
                if pair.employee_code not in matched:
                    matched[pair.employee_code] = self._repo.match_employee(pair.employee_code)
                employee = matched[pair.employee_code]
                minutes = self._calculator.worked_minutes(pair)
                record.rows.append(
                    PayrollImportRow(
                        employee_id=employee.id if employee else None,
                        employee_code=pair.employee_code,
                        employee_name=employee.display_name if employee else pair.employee_code,
                        work_date=pair.work_date,
                        in_time=pair.in_time,
                        out_time=pair.out_time,
                        minutes=minutes,
                        hours=to_hours(minutes),
                        row_signature=signature,
                    )
                )
            if pairs:
                record.period_start = min(p.work_date for p, _ in pairs)
                record.period_end = max(p.work_date for p, _ in pairs)
            self._audit.record(
                AuditAction.IMPORT,
                "PayrollImport",
                record.id,
                user_id=actor.user_id,
                metadata={"file_name": filename, "imported": record.imported_rows, "skipped": record.skipped_rows},
            )
        logger.info("Payroll import %s: %d punches, %d skipped", filename, record.imported_rows, record.skipped_rows)
        return {
            "import_id": record.id,
            "imported_rows": record.imported_rows,
            "skipped_rows": record.skipped_rows,
            "total_rows": record.row_count,
        }

    def list(self) -> list[dict]:
        return [i.to_dict() for i in self._repo.list_imports()]

    def get(self, import_id: int) -> PayrollImport:
        record = self._repo.get_import(import_id)
        if not record:
            raise NotFoundError("Import not found")
        return record

    def link_row(self, actor: SessionUser, import_id: int, row_id: int, employee_id: Any) -> PayrollImportRow:
        row = self._repo.get_import_row(row_id)
        if not row or row.import_id != import_id:
            raise NotFoundError("Import row not found")
        employee = self._repo.get_employee(parse_int(employee_id, "employee_id"))
        if not employee:
            raise ValidationError("Employee not found")
        with self._tx():
            row.employee_id = employee.id
            row.employee_name = employee.display_name
            self._audit.record(AuditAction.UPDATE, "PayrollImportRow", row.id, user_id=actor.user_id, new_values={"employee_id": employee.id})
        return row

    def delete(self, actor: SessionUser, import_id: int) -> None:
        record = self.get(import_id)
        if self._repo.count_runs_for_import(record.id):
            raise ValidationError("Import is used by a payroll run and cannot be deleted")
        with self._tx():
            self._repo.delete_import(record)
            self._audit.record(AuditAction.DELETE, "PayrollImport", import_id, user_id=actor.user_id)


class PayrollRunService:
    def __init__(self, repo: PayrollRepository, audit: AuditLogger, transaction: Transaction):
        self._repo = repo
        self._audit = audit
        self._tx = transaction

    def list(self, *, status: Optional[str] = None) -> list[dict]:
        return [r.to_dict() for r in self._repo.list_runs(status=status)]

    def get(self, run_id: int) -> PayrollRun:
        run = self._repo.get_run(run_id)
        if not run:
            raise NotFoundError("Payroll run not found")
        return run

    def create(self, actor: SessionUser, payload: Mapping[str, Any]) -> PayrollRun:
        name = optional_str(payload.get("name"))
        raw_ids = payload.get("employee_ids")
        if not name or not payload.get("import_id") or not isinstance(raw_ids, list) or not raw_ids:
            raise ValidationError("Name, import, and at least one employee are required")
        source = self._repo.get_import(parse_int(payload.get("import_id"), "import_id"))
        if not source:
            raise NotFoundError("Import not found")
        employee_ids = [parse_int(i, "employee id") for i in raw_ids]
        employees = {e.id: e for e in self._repo.list_employees_by_ids(employee_ids)}
        overrides = payload.get("rate_overrides") or {}
        if not isinstance(overrides, dict):
            raise ValidationError("rate_overrides must be an object")

        start = optional_date(payload.get("period_start"), "Period start") or source.period_start
        end = optional_date(payload.get("period_end"), "Period end") or source.period_end
        if start and end and end < start:
            raise ValidationError("Period end must be on or after period start")
        rows = self._repo.import_rows(source.id, employee_ids=list(employees), start=start, end=end)
        if not rows:
            raise ValidationError("No time rows found for the selected employees and period")

        minutes: dict[int, int] = {}
        hours: dict[int, Decimal] = {}
        for row in rows:
            minutes[row.employee_id] = minutes.get(row.employee_id, 0) + int(row.minutes or 0)
            hours[row.employee_id] = hours.get(row.employee_id, ZERO) + Decimal(row.hours or 0)

        with self._tx():
            run = PayrollRun(
                name=name,
                period_start=start,
                period_end=end,
                status=PayrollRunStatus.DRAFT.value,
                import_id=source.id,
                created_by_id=actor.user_id,
            )
            for employee_id, worked in minutes.items():
                employee = employees[employee_id]
                override = overrides.get(str(employee_id), overrides.get(employee_id))
                rate = parse_decimal(override, "Rate override", minimum=ZERO) if override not in (None, "") else Decimal(employee.hourly_rate or 0)
                line_hours = hours[employee_id] if hours[employee_id] > 0 else to_hours(worked)
                gross = gross_pay(line_hours, rate)
                run.lines.append(
                    PayrollRunLine(
                        employee_id=employee_id,
                        rate=rate,
                        minutes=worked,
                        hours=line_hours,
                        gross=gross,
                        paid=ZERO,
                        owed=gross,
                    )
                )
            self._recompute_totals(run)
            self._repo.add(run)
            self._audit.record(
                AuditAction.CREATE,
                "PayrollRun",
                run.id,
                user_id=actor.user_id,
                new_values={"name": name, "total_gross": str(run.total_gross), "employees": len(run.lines)},
            )
        return run

    @staticmethod
    def _recompute_totals(run: PayrollRun) -> None:
        run.total_hours = sum((Decimal(line.hours) for line in run.lines), ZERO)
        run.total_gross = sum((Decimal(line.gross) for line in run.lines), ZERO)
        run.total_paid = sum((Decimal(line.paid or 0) for line in run.lines), ZERO)
        run.total_owed = sum((Decimal(line.owed) for line in run.lines), ZERO)

    def approve(self, actor: SessionUser, run_id: int) -> PayrollRun:
        run = self.get(run_id)
        if run.status != PayrollRunStatus.DRAFT.value:
            raise ValidationError(f"Only DRAFT runs can be approved (status is {run.status})")
        with self._tx():
            run.status = PayrollRunStatus.APPROVED.value
            run.approved_at = now_utc()
            run.approved_by_id = actor.user_id
            self._audit.record(AuditAction.APPROVE, "PayrollRun", run.id, user_id=actor.user_id)
        return run

    def add_payment(self, actor: SessionUser, run_id: int, line_id: int, payload: Mapping[str, Any]) -> PayrollRunLine:
        run = self.get(run_id)
        if run.status == PayrollRunStatus.DRAFT.value:
            raise ValidationError("Approve the run before recording payments")
        line = self._repo.get_line(run.id, line_id)
        if not line:
            raise NotFoundError("Payroll line not found")
        amount = parse_decimal(payload.get("amount"), "Amount")
        if amount <= 0:
            raise ValidationError("Amount must be greater than 0")
        if amount > Decimal(line.owed):
            raise ValidationError("Payment exceeds the amount owed")
        paid_on = coerce_date(payload.get("paid_on") or payload.get("payment_date"), "Payment date")

        with self._tx():
            line.payments.append(
                PayrollPayment(
                    amount=amount,
                    paid_on=paid_on,
                    method=optional_str(payload.get("method")),
                    reference=optional_str(payload.get("reference")),
                    created_by_id=actor.user_id,
                )
            )
            line.paid = Decimal(line.paid or 0) + amount
            line.owed = Decimal(line.gross) - line.paid
            self._recompute_totals(run)
            run.status = PayrollRunStatus.PAID.value if run.total_owed <= 0 else PayrollRunStatus.PARTIALLY_PAID.value
            self._audit.record(
                AuditAction.PAYMENT,
                "PayrollRun",
                run.id,
                user_id=actor.user_id,
                metadata={"line_id": line.id, "amount": str(amount), "owed": str(line.owed)},
            )
        return line

    def export_excel(self, run_id: int) -> bytes:
        run = self.get(run_id)
        lines = pd.DataFrame(
            [
                {
                    "Employee": line.employee.display_name if line.employee else line.employee_id,
                    "Rate": float(line.rate),
                    "Minutes": line.minutes,
                    "Hours": float(line.hours),
                    "Gross": float(line.gross),
                    "Paid": float(line.paid or 0),
                    "Owed": float(line.owed),
                }
                for line in run.lines
            ],
            columns=["Employee", "Rate", "Minutes", "Hours", "Gross", "Paid", "Owed"],
        )
        summary = pd.DataFrame(
            [
                {"Field": "Run", "Value": run.name},
                {"Field": "Period", "Value": f"{run.period_start or ''} to {run.period_end or ''}"},
                {"Field": "Status", "Value": run.status},
                {"Field": "Total hours", "Value": float(run.total_hours)},
                {"Field": "Total gross", "Value": float(run.total_gross)},
                {"Field": "Total paid", "Value": float(run.total_paid)},
                {"Field": "Total owed", "Value": float(run.total_owed)},
            ]
        )
        return to_excel_bytes({"Summary": summary, "Lines": lines})

    def analytics(
        self,
        *,
        start=None,
        end=None,
        run_id: Optional[int] = None,
        employee_id: Optional[int] = None,
        paid_status: Optional[str] = None,
    ) -> dict:
        if paid_status and paid_status not in PAID_STATUSES:
            raise ValidationError("paid_status must be unpaid, partial or paid")
        lines = self._repo.analytics_lines(start=start, end=end, run_id=run_id, employee_id=employee_id)
        frame = pd.DataFrame(
            [
                {
                    "line_id": line.id,
                    "employee_id": line.employee_id,
                    "name": line.employee.display_name if line.employee else str(line.employee_id),
                    "gross": float(line.gross),
                    "paid": float(line.paid or 0),
                    "owed": float(line.owed),
                    "status": line_paid_status(line),
                }
                for line in lines
            ],
            columns=["line_id", "employee_id", "name", "gross", "paid", "owed", "status"],
        )
        if paid_status:
            frame = frame[frame["status"] == paid_status]
        kept = set(frame["line_id"])

        payments = pd.DataFrame(
            [
                {"date": p.paid_on.isoformat(), "amount": float(p.amount)}
                for line in lines
                if line.id in kept
                for p in line.payments
            ],
            columns=["date", "amount"],
        )
        over_time = payments.groupby("date", as_index=False)["amount"].sum().sort_values("date")

        per_employee = (
            frame.groupby(["employee_id", "name"], as_index=False)[["owed", "paid"]]
            .sum()
            .sort_values("owed", ascending=False)
            .head(10)
        )
        counts = {s: int(frame.loc[frame["status"] == s, "employee_id"].nunique()) for s in PAID_STATUSES}
        total_gross = round(float(frame["gross"].sum()), 2)
        total_paid = round(float(frame["paid"].sum()), 2)
        total_owed = round(float(frame["owed"].sum()), 2)
        return {
            "total_gross": total_gross,
            "total_paid": total_paid,
            "total_owed": total_owed,
            "employee_count": {**counts, "total": sum(counts.values())},
            "payments_over_time": over_time.to_dict(orient="records"),
            "owed_vs_paid_by_employee": per_employee[["name", "owed", "paid"]].to_dict(orient="records"),
            "waterfall": [
                {"category": "Gross Total", "value": total_gross},
                {"category": "Paid", "value": total_paid},
                {"category": "Remaining Owed", "value": total_owed},
            ],
        }
