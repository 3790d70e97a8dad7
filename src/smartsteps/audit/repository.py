from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import AuditLog


class AuditRepository(Protocol):
    def add(self, entry: AuditLog) -> None:
        raise NotImplementedError

    def list_page(
        self,
        *,
        page: int,
        page_size: int,
        entity_type: Optional[str] = None,
        action: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> tuple[Sequence[AuditLog], int]:
        raise NotImplementedError

    def count_since(self, since: Optional[datetime]) -> int:
        """Rows created after ``since``, or all rows when it is None."""
        raise NotImplementedError
