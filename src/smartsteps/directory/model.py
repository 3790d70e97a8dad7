from __future__ import annotations

from ..core.constants import DEFAULT_UNIT_MINUTES
from ..database.base import SoftDeleteMixin, TimestampMixin, money, stamp
from ..database.extensions import db


class Insurance(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "insurances"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    # legacy flat rate, used when the regular rate is unset
    rate_per_unit = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    regular_rate_per_unit = db.Column(db.Numeric(10, 2), nullable=True)
    regular_unit_minutes = db.Column(db.Integer, nullable=False, default=DEFAULT_UNIT_MINUTES)
    bcba_rate_per_unit = db.Column(db.Numeric(10, 2), nullable=True)
    bcba_unit_minutes = db.Column(db.Integer, nullable=False, default=DEFAULT_UNIT_MINUTES)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rate_per_unit": money(self.rate_per_unit),
            "regular_rate_per_unit": money(self.regular_rate_per_unit),
            "regular_unit_minutes": self.regular_unit_minutes,
            "bcba_rate_per_unit": money(self.bcba_rate_per_unit),
            "bcba_unit_minutes": self.bcba_unit_minutes,
            "active": bool(self.active),
            "created_at": stamp(self.created_at),
        }


class Client(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    id_number = db.Column(db.String(50), nullable=True)
    medicaid_id = db.Column(db.String(50), nullable=True)
    insurance_id = db.Column(db.Integer, db.ForeignKey("insurances.id"), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    insurance = db.relationship("Insurance", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "id_number": self.id_number,
            "medicaid_id": self.medicaid_id,
            "insurance_id": self.insurance_id,
            "insurance_name": self.insurance.name if self.insurance else None,
            "active": bool(self.active),
            "created_at": stamp(self.created_at),
        }


class Provider(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "providers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    npi = db.Column(db.String(20), nullable=True)
    signature = db.Column(db.Text, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "npi": self.npi,
            "signature": self.signature,
            "active": bool(self.active),
            "created_at": stamp(self.created_at),
        }


class Bcba(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "bcbas"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    signature = db.Column(db.Text, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "signature": self.signature,
            "active": bool(self.active),
            "created_at": stamp(self.created_at),
        }
