from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import CommunityClass, CommunityClient, CommunityInvoice


class CommunityRepository(Protocol):
    def get_client(self, client_id: int) -> Optional[CommunityClient]:
        raise NotImplementedError

    def list_clients(self) -> Sequence[CommunityClient]:
        raise NotImplementedError

    def get_class(self, class_id: int) -> Optional[CommunityClass]:
        raise NotImplementedError

    def list_classes(self, *, active_only: bool = False) -> Sequence[CommunityClass]:
        raise NotImplementedError

    def get_invoice(self, invoice_id: int) -> Optional[CommunityInvoice]:
        raise NotImplementedError

    def list_invoices(
        self,
        *,
        page: int,
        page_size: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
    ) -> tuple[Sequence[CommunityInvoice], int]:
        raise NotImplementedError

    def list_invoices_by_ids(self, ids: Sequence[int]) -> Sequence[CommunityInvoice]:
        raise NotImplementedError

    def add(self, record):
        raise NotImplementedError
