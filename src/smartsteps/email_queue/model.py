from __future__ import annotations

from ..common.datetime_utils import now_utc
from ..core.enums import EmailContext, EmailQueueStatus
from ..database.base import SoftDeleteMixin, TimestampMixin, stamp
from ..database.extensions import db


class EmailQueueItem(TimestampMixin, SoftDeleteMixin, db.Model):
    """One approved document waiting to go out in the next batch email.

    At most one live row exists per (entity_type, entity_id).
    """

    __tablename__ = "email_queue_items"
    __table_args__ = (db.Index("ix_email_queue_entity", "entity_type", "entity_id"),)

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    context = db.Column(db.String(20), nullable=False, default=EmailContext.MAIN.value, index=True)
    status = db.Column(db.String(20), nullable=False, default=EmailQueueStatus.QUEUED.value, index=True)
    queued_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    queued_at = db.Column(db.DateTime, nullable=False, default=now_utc)
    sent_at = db.Column(db.DateTime, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    subject = db.Column(db.String(255), nullable=True)
    recipients = db.Column(db.Text, nullable=True)
    batch_id = db.Column(db.String(40), nullable=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "context": self.context,
            "status": self.status,
            "queued_by_id": self.queued_by_id,
            "queued_at": stamp(self.queued_at),
            "sent_at": stamp(self.sent_at),
            "attempts": self.attempts or 0,
            "last_error": self.last_error,
            "subject": self.subject,
            "recipients": [r for r in (self.recipients or "").split(",") if r],
            "batch_id": self.batch_id,
        }
