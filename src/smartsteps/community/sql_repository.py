from __future__ import annotations

from typing import Optional, Sequence

from ..database.extensions import db
from .model import CommunityClass, CommunityClient, CommunityInvoice
from .repository import CommunityRepository


class SQLCommunityRepository(CommunityRepository):
    def get_client(self, client_id: int) -> Optional[CommunityClient]:
        return CommunityClient.live().filter(CommunityClient.id == client_id).first()

    def list_clients(self) -> Sequence[CommunityClient]:
        return CommunityClient.live().order_by(CommunityClient.created_at.desc()).all()

    def get_class(self, class_id: int) -> Optional[CommunityClass]:
        return CommunityClass.live().filter(CommunityClass.id == class_id).first()

    def list_classes(self, *, active_only: bool = False) -> Sequence[CommunityClass]:
        q = CommunityClass.live()
        if active_only:
            q = q.filter(CommunityClass.active.is_(True))
        return q.order_by(CommunityClass.name.asc()).all()

    def get_invoice(self, invoice_id: int) -> Optional[CommunityInvoice]:
        return CommunityInvoice.live().filter(CommunityInvoice.id == invoice_id).first()

    def list_invoices(
        self,
        *,
        page: int,
        page_size: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
    ) -> tuple[Sequence[CommunityInvoice], int]:
        q = CommunityInvoice.live()
        if status:
            q = q.filter(CommunityInvoice.status == status)
        if client_id:
            q = q.filter(CommunityInvoice.client_id == client_id)
        total = q.count()
        items = (
            q.order_by(CommunityInvoice.created_at.desc(), CommunityInvoice.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def list_invoices_by_ids(self, ids: Sequence[int]) -> Sequence[CommunityInvoice]:
        if not ids:
            return []
        return CommunityInvoice.live().filter(CommunityInvoice.id.in_(list(ids))).all()

    def add(self, record):
        db.session.add(record)
        db.session.flush()
        return record
