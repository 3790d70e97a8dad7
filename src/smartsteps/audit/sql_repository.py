from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..database.extensions import db
from .model import AuditLog
from .repository import AuditRepository


class SQLAuditRepository(AuditRepository):
    def add(self, entry: AuditLog) -> None:
        # savepoint: a failed audit write rolls back only itself
        with db.session.begin_nested():
            db.session.add(entry)

    def list_page(
        self,
        *,
        page: int,
        page_size: int,
        entity_type: Optional[str] = None,
        action: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> tuple[Sequence[AuditLog], int]:
        q = AuditLog.query
        if entity_type:
            q = q.filter(AuditLog.entity_type == entity_type)
        if action:
            q = q.filter(AuditLog.action == action)
        if user_id:
            q = q.filter(AuditLog.user_id == user_id)
        total = q.count()
        items = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def count_since(self, since: Optional[datetime]) -> int:
        q = AuditLog.query
        if since is not None:
            q = q.filter(AuditLog.created_at > since)
        return q.count()
