from __future__ import annotations

from ..common.datetime_utils import iso, now_utc
from ..core.enums import InvoiceStatus
from ..database.base import SoftDeleteMixin, TimestampMixin, money, stamp
from ..database.extensions import db


class Invoice(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(30), unique=True, nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    adjustments = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    outstanding = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=InvoiceStatus.DRAFT.value, index=True)
    notes = db.Column(db.Text, nullable=True)
    view_token = db.Column(db.String(64), nullable=True, unique=True)
    token_expires_at = db.Column(db.DateTime, nullable=True)
    sent_at = db.Column(db.DateTime, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    client = db.relationship("Client", lazy="joined")
    entries = db.relationship("InvoiceEntry", back_populates="invoice", cascade="all, delete-orphan", lazy="selectin")
    payments = db.relationship(
        "Payment", cascade="all, delete-orphan", lazy="selectin", order_by="Payment.payment_date"
    )
    adjustment_rows = db.relationship(
        "InvoiceAdjustment", cascade="all, delete-orphan", lazy="selectin", order_by="InvoiceAdjustment.created_at"
    )

    def to_dict(self, *, detail: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "total_amount": money(self.total_amount),
            "paid_amount": money(self.paid_amount),
            "adjustments": money(self.adjustments),
            "outstanding": money(self.outstanding),
            "status": self.status,
            "notes": self.notes,
            "sent_at": stamp(self.sent_at),
            "token_expires_at": stamp(self.token_expires_at),
            "created_by": self.created_by,
            "created_at": stamp(self.created_at),
        }
        if detail:
            data["entries"] = [e.to_dict() for e in self.entries]
            data["payments"] = [p.to_dict() for p in self.payments]
            data["adjustment_rows"] = [a.to_dict() for a in self.adjustment_rows]
        return data


class InvoiceEntry(db.Model):
    __tablename__ = "invoice_entries"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    timesheet_id = db.Column(db.Integer, db.ForeignKey("timesheets.id"), nullable=False)
    timesheet_entry_id = db.Column(db.Integer, db.ForeignKey("timesheet_entries.id"), nullable=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=True)
    insurance_id = db.Column(db.Integer, db.ForeignKey("insurances.id"), nullable=True)
    units = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    rate = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    invoice = db.relationship("Invoice", back_populates="entries")
    provider = db.relationship("Provider", lazy="joined")
    insurance = db.relationship("Insurance", lazy="joined")
    timesheet_entry = db.relationship("TimesheetEntry", lazy="joined")

    def to_dict(self) -> dict:
        te = self.timesheet_entry
        return {
            "id": self.id,
            "timesheet_id": self.timesheet_id,
            "timesheet_entry_id": self.timesheet_entry_id,
            "provider_id": self.provider_id,
            "provider_name": self.provider.name if self.provider else None,
            "insurance_id": self.insurance_id,
            "date": iso(te.date) if te else None,
            "kind": te.kind if te else None,
            "minutes": te.minutes if te else None,
            "units": money(self.units),
            "rate": money(self.rate),
            "amount": money(self.amount),
        }


class Payment(db.Model):
    __tablename__ = "invoice_payments"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    method = db.Column(db.String(50), nullable=True)
    reference = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": money(self.amount),
            "payment_date": iso(self.payment_date),
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "created_at": stamp(self.created_at),
        }


class InvoiceAdjustment(db.Model):
    __tablename__ = "invoice_adjustments"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": money(self.amount),
            "reason": self.reason,
            "created_at": stamp(self.created_at),
        }
