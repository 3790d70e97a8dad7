from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from .model import EmailQueueItem


class EmailQueueRepository(Protocol):
    def get_by_id(self, item_id: int) -> Optional[EmailQueueItem]:
        raise NotImplementedError

    def get_live_for_entity(self, entity_type: str, entity_id: int) -> Optional[EmailQueueItem]:
        raise NotImplementedError

    def list_items(self, *, context: Optional[str] = None, status: Optional[str] = None) -> Sequence[EmailQueueItem]:
        raise NotImplementedError

    def list_by_ids(self, ids: Iterable[int]) -> Sequence[EmailQueueItem]:
        raise NotImplementedError

    def lock_queued(self, context: str, ids: Optional[Iterable[int]] = None) -> Sequence[EmailQueueItem]:
        """Move QUEUED items of ``context`` (optionally only ``ids``) to SENDING and return them."""
        raise NotImplementedError

    def add(self, item: EmailQueueItem) -> EmailQueueItem:
        raise NotImplementedError

    def count_status(self, status: str) -> int:
        raise NotImplementedError
