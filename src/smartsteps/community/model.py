from __future__ import annotations

from ..core.constants import COMMUNITY_UNIT_MINUTES
from ..core.enums import CommunityInvoiceStatus
from ..database.base import SoftDeleteMixin, TimestampMixin, money, stamp
from ..database.extensions import db


class CommunityClient(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "community_clients"

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(50), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    medicaid_id = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="ACTIVE")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "medicaid_id": self.medicaid_id,
            "notes": self.notes,
            "status": self.status,
            "created_at": stamp(self.created_at),
        }


class CommunityClass(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "community_classes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    rate_per_unit = db.Column(db.Numeric(10, 2), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rate_per_unit": money(self.rate_per_unit),
            "active": bool(self.active),
            "created_at": stamp(self.created_at),
        }


class CommunityInvoice(TimestampMixin, SoftDeleteMixin, db.Model):
    """Fixed-unit invoice for a community class; the rate is copied from the class."""

    __tablename__ = "community_invoices"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("community_clients.id"), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey("community_classes.id"), nullable=False, index=True)
    units = db.Column(db.Integer, nullable=False)
    unit_minutes = db.Column(db.Integer, nullable=False, default=COMMUNITY_UNIT_MINUTES)
    rate_per_unit = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=CommunityInvoiceStatus.DRAFT.value, index=True)
    service_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    rejected_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    queued_at = db.Column(db.DateTime, nullable=True)
    emailed_at = db.Column(db.DateTime, nullable=True)
    view_token = db.Column(db.String(64), nullable=True, unique=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    client = db.relationship("CommunityClient", lazy="joined")
    community_class = db.relationship("CommunityClass", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client.full_name if self.client else None,
            "class_id": self.class_id,
            "class_name": self.community_class.name if self.community_class else None,
            "units": self.units,
            "unit_minutes": self.unit_minutes,
            "rate_per_unit": money(self.rate_per_unit),
            "total_amount": money(self.total_amount),
            "status": self.status,
            "service_date": self.service_date.isoformat() if self.service_date else None,
            "notes": self.notes,
            "approved_at": stamp(self.approved_at),
            "rejected_at": stamp(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "queued_at": stamp(self.queued_at),
            "emailed_at": stamp(self.emailed_at),
            "created_at": stamp(self.created_at),
        }
