from __future__ import annotations

from ..billing.units import minutes_to_units
from ..core.enums import EntryKind, TimesheetStatus
from ..database.base import SoftDeleteMixin, TimestampMixin, money, stamp
from ..database.extensions import db
from ..common.datetime_utils import iso


class Timesheet(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "timesheets"

    id = db.Column(db.Integer, primary_key=True)
    timesheet_number = db.Column(db.String(20), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=True, index=True)
    bcba_id = db.Column(db.Integer, db.ForeignKey("bcbas.id"), nullable=True)
    insurance_id = db.Column(db.Integer, db.ForeignKey("insurances.id"), nullable=True)
    is_bcba = db.Column(db.Boolean, nullable=False, default=False, index=True)
    service_type = db.Column(db.String(50), nullable=True)
    session_data = db.Column(db.JSON, nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    timezone = db.Column(db.String(64), nullable=False, default="America/New_York")
    status = db.Column(db.String(20), nullable=False, default=TimesheetStatus.DRAFT.value, index=True)

    submitted_at = db.Column(db.DateTime, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    queued_at = db.Column(db.DateTime, nullable=True)
    emailed_at = db.Column(db.DateTime, nullable=True)
    archived_at = db.Column(db.DateTime, nullable=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True)
    invoiced_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    last_edited_by = db.Column(db.Integer, nullable=True)

    client = db.relationship("Client", lazy="joined")
    provider = db.relationship("Provider", lazy="joined")
    bcba = db.relationship("Bcba", lazy="joined")
    insurance = db.relationship("Insurance", lazy="joined")
    entries = db.relationship(
        "TimesheetEntry",
        back_populates="timesheet",
        cascade="all, delete-orphan",
        order_by=lambda: [TimesheetEntry.date, TimesheetEntry.start_time],
        lazy="selectin",
    )

    @property
    def total_minutes(self) -> int:
        return sum(int(e.minutes or 0) for e in self.entries)

    def to_dict(self, *, with_entries: bool = True) -> dict:
        data = {
            "id": self.id,
            "timesheet_number": self.timesheet_number,
            "user_id": self.user_id,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "provider_id": self.provider_id,
            "provider_name": self.provider.name if self.provider else None,
            "bcba_id": self.bcba_id,
            "bcba_name": self.bcba.name if self.bcba else None,
            "insurance_id": self.insurance_id,
            "insurance_name": self.insurance.name if self.insurance else None,
            "is_bcba": bool(self.is_bcba),
            "service_type": self.service_type,
            "session_data": self.session_data,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "timezone": self.timezone,
            "status": self.status,
            "submitted_at": stamp(self.submitted_at),
            "approved_at": stamp(self.approved_at),
            "rejected_at": stamp(self.rejected_at),
            "queued_at": stamp(self.queued_at),
            "emailed_at": stamp(self.emailed_at),
            "archived_at": stamp(self.archived_at),
            "invoice_id": self.invoice_id,
            "invoiced_at": stamp(self.invoiced_at),
            "rejection_reason": self.rejection_reason,
            "total_minutes": self.total_minutes,
            "total_units": money(minutes_to_units(self.total_minutes)),
            "created_at": stamp(self.created_at),
        }
        if with_entries:
            data["entries"] = [e.to_dict() for e in self.entries]
        return data


class TimesheetEntry(db.Model):
    __tablename__ = "timesheet_entries"

    id = db.Column(db.Integer, primary_key=True)
    timesheet_id = db.Column(db.Integer, db.ForeignKey("timesheets.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)
    minutes = db.Column(db.Integer, nullable=False)
    units = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    kind = db.Column(db.String(2), nullable=False, default=EntryKind.DR.value)
    notes = db.Column(db.Text, nullable=True)
    invoiced = db.Column(db.Boolean, nullable=False, default=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True)

    timesheet = db.relationship("Timesheet", back_populates="entries")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": iso(self.date),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "minutes": self.minutes,
            "units": money(self.units),
            "kind": self.kind,
            "notes": self.notes,
            "invoiced": bool(self.invoiced),
            "invoice_id": self.invoice_id,
        }
