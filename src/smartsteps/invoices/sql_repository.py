from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func

from ..core.enums import InvoiceStatus
from ..database.extensions import db
from .model import Invoice, InvoiceEntry
from .repository import InvoiceRepository


class SQLInvoiceRepository(InvoiceRepository):
    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return Invoice.live().filter(Invoice.id == invoice_id).first()

    def find_by_number(self, number: str) -> Optional[Invoice]:
        return Invoice.live().filter(Invoice.invoice_number == number).first()

    def list_created_between(
        self,
        start: datetime,
        end: datetime,
        *,
        client_id: Optional[int] = None,
        insurance_id: Optional[int] = None,
    ) -> Sequence[Invoice]:
        q = Invoice.live().filter(Invoice.created_at >= start, Invoice.created_at <= end)
        if client_id:
            q = q.filter(Invoice.client_id == client_id)
        if insurance_id:
            q = q.filter(Invoice.entries.any(InvoiceEntry.insurance_id == insurance_id))
        return q.order_by(Invoice.created_at.asc(), Invoice.id.asc()).all()

    def list_page(
        self,
        *,
        page: int,
        page_size: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
    ) -> tuple[Sequence[Invoice], int]:
        q = Invoice.live()
        if status:
            q = q.filter(Invoice.status == status)
        if client_id:
            q = q.filter(Invoice.client_id == client_id)
        total = q.count()
        items = q.order_by(Invoice.start_date.desc(), Invoice.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def find_overlapping(self, client_id: int, start: date, end: date) -> Optional[Invoice]:
        return (
            Invoice.live()
            .filter(Invoice.client_id == client_id, Invoice.start_date <= end, Invoice.end_date >= start)
            .first()
        )

    def count_all(self) -> int:
        return db.session.query(func.count(Invoice.id)).scalar() or 0

    def outstanding_total(self) -> Decimal:
        total = (
            db.session.query(func.coalesce(func.sum(Invoice.outstanding), 0))
            .filter(Invoice.deleted_at.is_(None), Invoice.status != InvoiceStatus.VOID.value)
            .scalar()
        )
        return Decimal(str(total or 0))

    def add(self, invoice: Invoice) -> Invoice:
        db.session.add(invoice)
        db.session.flush()
        return invoice
