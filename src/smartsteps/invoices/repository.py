from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Protocol, Sequence

from .model import Invoice


class InvoiceRepository(Protocol):
    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        raise NotImplementedError

    def find_by_number(self, number: str) -> Optional[Invoice]:
        raise NotImplementedError

    def list_created_between(
        self,
        start: datetime,
        end: datetime,
        *,
        client_id: Optional[int] = None,
        insurance_id: Optional[int] = None,
    ) -> Sequence[Invoice]:
        raise NotImplementedError

    def list_page(
        self,
        *,
        page: int,
        page_size: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
    ) -> tuple[Sequence[Invoice], int]:
        raise NotImplementedError

    def find_overlapping(self, client_id: int, start: date, end: date) -> Optional[Invoice]:
        """A live invoice for the client whose period intersects ``[start, end]``."""
        raise NotImplementedError

    def count_all(self) -> int:
        """Every invoice ever created, deleted ones included (used for numbering)."""
        raise NotImplementedError

    def outstanding_total(self) -> Decimal:
        raise NotImplementedError

    def add(self, invoice: Invoice) -> Invoice:
        raise NotImplementedError
