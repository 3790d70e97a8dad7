from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..core.enums import EmailQueueStatus
from ..database.extensions import db
from .model import EmailQueueItem
from .repository import EmailQueueRepository


class SQLEmailQueueRepository(EmailQueueRepository):
    def get_by_id(self, item_id: int) -> Optional[EmailQueueItem]:
        return EmailQueueItem.live().filter(EmailQueueItem.id == item_id).first()

    def get_live_for_entity(self, entity_type: str, entity_id: int) -> Optional[EmailQueueItem]:
        return (
            EmailQueueItem.live()
            .filter(EmailQueueItem.entity_type == entity_type, EmailQueueItem.entity_id == entity_id)
            .first()
        )

    def list_items(self, *, context: Optional[str] = None, status: Optional[str] = None) -> Sequence[EmailQueueItem]:
        q = EmailQueueItem.live()
        if context:
            q = q.filter(EmailQueueItem.context == context)
        if status:
            q = q.filter(EmailQueueItem.status == status)
        return q.order_by(EmailQueueItem.queued_at.desc(), EmailQueueItem.id.desc()).all()

    def list_by_ids(self, ids: Iterable[int]) -> Sequence[EmailQueueItem]:
        ids = list(ids)
        if not ids:
            return []
        return EmailQueueItem.live().filter(EmailQueueItem.id.in_(ids)).all()

    def lock_queued(self, context: str, ids: Optional[Iterable[int]] = None) -> Sequence[EmailQueueItem]:
        q = EmailQueueItem.live().filter(
            EmailQueueItem.context == context,
            EmailQueueItem.status == EmailQueueStatus.QUEUED.value,
        )
        if ids is not None:
            q = q.filter(EmailQueueItem.id.in_(list(ids)))
        items = q.order_by(EmailQueueItem.queued_at.asc()).with_for_update().all()
        for item in items:
            item.status = EmailQueueStatus.SENDING.value
        db.session.flush()
        return items

    def add(self, item: EmailQueueItem) -> EmailQueueItem:
        db.session.add(item)
        db.session.flush()
        return item

    def count_status(self, status: str) -> int:
        return EmailQueueItem.live().filter(EmailQueueItem.status == status).count()
