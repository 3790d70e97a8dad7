from __future__ import annotations

from ..database.base import SoftDeleteMixin, TimestampMixin, stamp
from ..database.extensions import db


class FormDocument(TimestampMixin, SoftDeleteMixin, db.Model):
    """Monthly per-client form; visit attestations are also keyed by provider."""

    __tablename__ = "form_documents"
    __table_args__ = (db.Index("ix_form_documents_key", "form_type", "client_id", "year", "month"),)

    id = db.Column(db.Integer, primary_key=True)
    form_type = db.Column(db.String(40), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    client = db.relationship("Client", lazy="joined")
    provider = db.relationship("Provider", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.form_type,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "provider_id": self.provider_id,
            "provider_name": self.provider.name if self.provider else None,
            "month": self.month,
            "year": self.year,
            "payload": self.payload or {},
            "updated_at": stamp(self.updated_at),
        }
