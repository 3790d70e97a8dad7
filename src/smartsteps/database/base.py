from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..common.datetime_utils import now_utc
from .extensions import db


class TimestampMixin:
    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)
    updated_at = db.Column(db.DateTime, nullable=False, default=now_utc, onupdate=now_utc)


class SoftDeleteMixin:
    """Rows are hidden by stamping ``deleted_at`` instead of being removed."""

    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        self.deleted_at = now_utc()

    @classmethod
    def live(cls):
        return cls.query.filter(cls.deleted_at.is_(None))


def money(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(Decimal(value).quantize(Decimal("0.01")))


def stamp(value) -> Optional[str]:
    return value.isoformat() if value else None
