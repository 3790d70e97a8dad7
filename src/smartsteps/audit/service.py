from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from ..core.enums import AuditAction
from .model import AuditLog
from .repository import AuditRepository

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes audit rows inside the caller's transaction.

    Write failures are logged and never raised to the caller.
    """

    def __init__(self, repo: AuditRepository):
        self._repo = repo

    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: Any = None,
        *,
        user_id: Optional[int] = None,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        try:
            self._repo.add(
                AuditLog(
                    action=AuditAction(action).value,
                    entity_type=entity_type,
                    entity_id=None if entity_id is None else str(entity_id),
                    user_id=user_id,
                    old_values=old_values,
                    new_values=new_values,
                    meta=metadata,
                )
            )
        except Exception:
            logger.exception("Audit write failed: %s %s %s", action, entity_type, entity_id)

    def list_activity(self, *, page: int, page_size: int, entity_type=None, action=None, user_id=None) -> dict:
        items, total = self._repo.list_page(
            page=page, page_size=page_size, entity_type=entity_type, action=action, user_id=user_id
        )
        return {"items": [i.to_dict() for i in items], "total": total, "page": page, "page_size": page_size}

    def unread_count(self, last_seen: Optional[datetime]) -> int:
        return self._repo.count_since(last_seen)
