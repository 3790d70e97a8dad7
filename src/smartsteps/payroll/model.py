from __future__ import annotations

from ..core.enums import PayrollRunStatus
from ..database.base import SoftDeleteMixin, TimestampMixin, money, stamp
from ..database.extensions import db


class PayrollEmployee(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "payroll_employees"

    id = db.Column(db.Integer, primary_key=True)
    display_name = db.Column(db.String(150), nullable=False)
    # badge / scanner id as it appears in time clock exports
    scanner_code = db.Column(db.String(50), nullable=True, index=True)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "scanner_code": self.scanner_code,
            "hourly_rate": money(self.hourly_rate),
            "active": bool(self.active),
            "created_at": stamp(self.created_at),
        }


class PayrollImport(TimestampMixin, db.Model):
    __tablename__ = "payroll_imports"

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(255), nullable=False, index=True)
    file_hash = db.Column(db.String(64), nullable=False, index=True)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    row_count = db.Column(db.Integer, nullable=False, default=0)
    imported_rows = db.Column(db.Integer, nullable=False, default=0)
    skipped_rows = db.Column(db.Integer, nullable=False, default=0)
    timezone = db.Column(db.String(64), nullable=False)
    period_start = db.Column(db.Date, nullable=True)
    period_end = db.Column(db.Date, nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    rows = db.relationship(
        "PayrollImportRow",
        back_populates="payroll_import",
        cascade="all, delete-orphan",
        order_by=lambda: [PayrollImportRow.work_date, PayrollImportRow.in_time],
    )

    def to_dict(self, with_rows: bool = False) -> dict:
        data = {
            "id": self.id,
            "file_name": self.file_name,
            "file_hash": self.file_hash,
            "file_size": self.file_size,
            "row_count": self.row_count,
            "imported_rows": self.imported_rows,
            "skipped_rows": self.skipped_rows,
            "timezone": self.timezone,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "created_at": stamp(self.created_at),
        }
        if with_rows:
            data["rows"] = [r.to_dict() for r in self.rows]
        return data


class PayrollImportRow(TimestampMixin, db.Model):
    """One paired IN/OUT shift of one employee on one day."""

    __tablename__ = "payroll_import_rows"

    id = db.Column(db.Integer, primary_key=True)
    import_id = db.Column(db.Integer, db.ForeignKey("payroll_imports.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("payroll_employees.id"), nullable=True, index=True)
    employee_code = db.Column(db.String(100), nullable=False)
    employee_name = db.Column(db.String(150), nullable=True)
    work_date = db.Column(db.Date, nullable=False, index=True)
    in_time = db.Column(db.DateTime, nullable=True)
    out_time = db.Column(db.DateTime, nullable=True)
    minutes = db.Column(db.Integer, nullable=False, default=0)
    hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    row_signature = db.Column(db.String(64), nullable=False)

    payroll_import = db.relationship("PayrollImport", back_populates="rows")
    employee = db.relationship("PayrollEmployee", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "import_id": self.import_id,
            "employee_id": self.employee_id,
            "employee_code": self.employee_code,
            "employee_name": self.employee.display_name if self.employee else self.employee_name,
            "work_date": self.work_date.isoformat(),
            "in_time": stamp(self.in_time),
            "out_time": stamp(self.out_time),
            "minutes": self.minutes,
            "hours": money(self.hours),
        }


class PayrollRun(TimestampMixin, db.Model):
    __tablename__ = "payroll_runs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    period_start = db.Column(db.Date, nullable=True)
    period_end = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PayrollRunStatus.DRAFT.value, index=True)
    import_id = db.Column(db.Integer, db.ForeignKey("payroll_imports.id"), nullable=True)
    total_hours = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_gross = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_owed = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)

    source_import = db.relationship("PayrollImport")
    lines = db.relationship("PayrollRunLine", back_populates="run", cascade="all, delete-orphan", order_by="PayrollRunLine.id")

    def to_dict(self, with_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "status": self.status,
            "import_id": self.import_id,
            "total_hours": money(self.total_hours),
            "total_gross": money(self.total_gross),
            "total_paid": money(self.total_paid),
            "total_owed": money(self.total_owed),
            "approved_at": stamp(self.approved_at),
            "created_at": stamp(self.created_at),
        }
        if with_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class PayrollRunLine(TimestampMixin, db.Model):
    __tablename__ = "payroll_run_lines"
    __table_args__ = (db.UniqueConstraint("run_id", "employee_id", name="uq_payroll_run_employee"),)

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.Integer, db.ForeignKey("payroll_runs.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("payroll_employees.id"), nullable=False)
    rate = db.Column(db.Numeric(10, 2), nullable=False)
    minutes = db.Column(db.Integer, nullable=False, default=0)
    hours = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    gross = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    owed = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    run = db.relationship("PayrollRun", back_populates="lines")
    employee = db.relationship("PayrollEmployee", lazy="joined")
    payments = db.relationship("PayrollPayment", back_populates="line", cascade="all, delete-orphan", order_by="PayrollPayment.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "run_id": self.run_id,
            "employee_id": self.employee_id,
            "employee_name": self.employee.display_name if self.employee else None,
            "rate": money(self.rate),
            "minutes": self.minutes,
            "hours": money(self.hours),
            "gross": money(self.gross),
            "paid": money(self.paid),
            "owed": money(self.owed),
            "payments": [p.to_dict() for p in self.payments],
        }


class PayrollPayment(TimestampMixin, db.Model):
    __tablename__ = "payroll_payments"

    id = db.Column(db.Integer, primary_key=True)
    line_id = db.Column(db.Integer, db.ForeignKey("payroll_run_lines.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    paid_on = db.Column(db.Date, nullable=False)
    method = db.Column(db.String(50), nullable=True)
    reference = db.Column(db.String(100), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    line = db.relationship("PayrollRunLine", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": money(self.amount),
            "paid_on": self.paid_on.isoformat(),
            "method": self.method,
            "reference": self.reference,
            "created_at": stamp(self.created_at),
        }
