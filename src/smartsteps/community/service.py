from __future__ import annotations

import logging
import secrets
from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from ..audit.service import AuditLogger
from ..billing.units import community_total
from ..common.datetime_utils import now_utc, optional_date
from ..common.validators import optional_str, parse_bool, parse_decimal, parse_int, require_non_empty
from ..core.constants import COMMUNITY_UNIT_MINUTES, VIEW_TOKEN_BYTES
from ..core.enums import AuditAction, CommunityInvoiceStatus, EmailContext, EmailEntityType, EmailQueueStatus
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..email_queue.model import EmailQueueItem
from ..email_queue.repository import EmailQueueRepository
from ..permissions.model import SessionUser
from .model import CommunityClass, CommunityClient, CommunityInvoice
from .repository import CommunityRepository

logger = logging.getLogger(__name__)

Transaction = Callable[[], AbstractContextManager]

CLIENT_FIELDS = ("email", "phone", "address", "city", "state", "zip_code", "medicaid_id", "notes")


class CommunityService:
    """Clients, classes and fixed-unit invoices of the community program."""

    def __init__(
        self,
        repo: CommunityRepository,
        queue: EmailQueueRepository,
        audit: AuditLogger,
        transaction: Transaction,
    ):
        self._repo = repo
        self._queue = queue
        self._audit = audit
        self._tx = transaction

    # ---- clients ----

    def list_clients(self) -> list[dict]:
        return [c.to_dict() for c in self._repo.list_clients()]

    def get_client(self, client_id: int) -> CommunityClient:
        client = self._repo.get_client(client_id)
        if not client:
            raise NotFoundError("Community client not found")
        return client

    def _client_fields(self, payload: Mapping[str, Any], partial: bool) -> dict:
        out: dict[str, Any] = {}
        if not partial or "first_name" in payload or "last_name" in payload:
            if not optional_str(payload.get("first_name")) or not optional_str(payload.get("last_name")):
                raise ValidationError("First name and last name are required")
            out["first_name"] = optional_str(payload.get("first_name"))
            out["last_name"] = optional_str(payload.get("last_name"))
        for key in CLIENT_FIELDS:
            if key in payload:
                out[key] = optional_str(payload.get(key))
        if "status" in payload:
            out["status"] = (optional_str(payload.get("status")) or "ACTIVE").upper()
        return out

    def create_client(self, actor: SessionUser, payload: Mapping[str, Any]) -> CommunityClient:
        fields = self._client_fields(payload, False)
        fields.setdefault("status", "ACTIVE")
        with self._tx():
            client = self._repo.add(CommunityClient(**fields))
            self._audit.record(AuditAction.CREATE, "CommunityClient", client.id, user_id=actor.user_id)
        return client

    def update_client(self, actor: SessionUser, client_id: int, payload: Mapping[str, Any]) -> CommunityClient:
        client = self.get_client(client_id)
        fields = self._client_fields(payload, True)
        with self._tx():
            for key, value in fields.items():
                setattr(client, key, value)
            self._audit.record(AuditAction.UPDATE, "CommunityClient", client.id, user_id=actor.user_id, new_values=fields)
        return client

    def delete_client(self, actor: SessionUser, client_id: int) -> None:
        client = self.get_client(client_id)
        with self._tx():
            client.soft_delete()
            self._audit.record(AuditAction.DELETE, "CommunityClient", client.id, user_id=actor.user_id)

    # ---- classes ----

    def list_classes(self, *, active_only: bool = False) -> list[dict]:
        return [c.to_dict() for c in self._repo.list_classes(active_only=active_only)]

    def get_class(self, class_id: int) -> CommunityClass:
        item = self._repo.get_class(class_id)
        if not item:
            raise NotFoundError("Community class not found")
        return item

    def create_class(self, actor: SessionUser, payload: Mapping[str, Any]) -> CommunityClass:
        name = require_non_empty(payload.get("name"), "Name")
        rate = parse_decimal(payload.get("rate_per_unit"), "Rate per unit", minimum=Decimal("0"))
        active = parse_bool(payload.get("active", True))
        with self._tx():
            item = self._repo.add(CommunityClass(name=name, rate_per_unit=rate, active=active))
            self._audit.record(AuditAction.CREATE, "CommunityClass", item.id, user_id=actor.user_id, new_values={"name": name, "rate_per_unit": str(rate)})
        return item

    def update_class(self, actor: SessionUser, class_id: int, payload: Mapping[str, Any]) -> CommunityClass:
        item = self.get_class(class_id)
        with self._tx():
            if "name" in payload:
                item.name = require_non_empty(payload.get("name"), "Name")
            if "rate_per_unit" in payload:
                item.rate_per_unit = parse_decimal(payload.get("rate_per_unit"), "Rate per unit", minimum=Decimal("0"))
            if "active" in payload:
                item.active = parse_bool(payload.get("active"))
            self._audit.record(AuditAction.UPDATE, "CommunityClass", item.id, user_id=actor.user_id)
        return item

    def delete_class(self, actor: SessionUser, class_id: int) -> None:
        item = self.get_class(class_id)
        with self._tx():
            item.soft_delete()
            self._audit.record(AuditAction.DELETE, "CommunityClass", item.id, user_id=actor.user_id)

    # ---- invoices ----

    def list_invoices(self, *, page: int, page_size: int, status: Optional[str] = None, client_id: Optional[int] = None) -> dict:
        items, total = self._repo.list_invoices(page=page, page_size=page_size, status=status, client_id=client_id)
        return {"items": [i.to_dict() for i in items], "total": total, "page": page, "page_size": page_size}

    def get_invoice(self, invoice_id: int) -> CommunityInvoice:
        invoice = self._repo.get_invoice(invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    def get_public(self, invoice_id: int, token: Optional[str]) -> CommunityInvoice:
        invoice = self.get_invoice(invoice_id)
        if not token or not invoice.view_token or not secrets.compare_digest(token, invoice.view_token):
            raise AuthorizationError("Invalid invoice link")
        return invoice

    def create_invoice(self, actor: SessionUser, payload: Mapping[str, Any]) -> CommunityInvoice:
        if not payload.get("client_id") or not payload.get("class_id") or payload.get("units") in (None, ""):
            raise ValidationError("Client, class, and units (positive number) are required")
        units = parse_int(payload.get("units"), "Units")
        if units <= 0:
            raise ValidationError("Client, class, and units (positive number) are required")
        client = self.get_client(parse_int(payload.get("client_id"), "client_id"))
        item = self.get_class(parse_int(payload.get("class_id"), "class_id"))
        rate = Decimal(item.rate_per_unit)

        with self._tx():
            invoice = self._repo.add(
                CommunityInvoice(
                    client_id=client.id,
                    class_id=item.id,
                    units=units,
                    unit_minutes=COMMUNITY_UNIT_MINUTES,
                    rate_per_unit=rate,
                    total_amount=community_total(units, rate),
                    status=CommunityInvoiceStatus.DRAFT.value,
                    service_date=optional_date(payload.get("service_date"), "Service date"),
                    notes=optional_str(payload.get("notes")),
                    created_by_id=actor.user_id,
                )
            )
            self._audit.record(
                AuditAction.CREATE,
                "CommunityInvoice",
                invoice.id,
                user_id=actor.user_id,
                new_values={"units": units, "total_amount": str(invoice.total_amount)},
            )
        return invoice

    def update_invoice(self, actor: SessionUser, invoice_id: int, payload: Mapping[str, Any]) -> CommunityInvoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status != CommunityInvoiceStatus.DRAFT.value:
            raise ValidationError("Only DRAFT invoices can be edited")
        with self._tx():
            if "units" in payload:
                units = parse_int(payload.get("units"), "Units", minimum=1)
                if units != invoice.units:
                    invoice.units = units
                    invoice.total_amount = community_total(units, Decimal(invoice.rate_per_unit))
            if "service_date" in payload:
                invoice.service_date = optional_date(payload.get("service_date"), "Service date")
            if "notes" in payload:
                invoice.notes = optional_str(payload.get("notes"))
            self._audit.record(AuditAction.UPDATE, "CommunityInvoice", invoice.id, user_id=actor.user_id)
        return invoice

    def delete_invoice(self, actor: SessionUser, invoice_id: int) -> None:
        invoice = self.get_invoice(invoice_id)
        with self._tx():
            invoice.soft_delete()
            queued = self._queue.get_live_for_entity(EmailEntityType.COMMUNITY_INVOICE.value, invoice.id)
            if queued is not None and queued.status == EmailQueueStatus.QUEUED.value:
                queued.soft_delete()
            self._audit.record(AuditAction.DELETE, "CommunityInvoice", invoice.id, user_id=actor.user_id)

    def approve_invoice(self, actor: SessionUser, invoice_id: int) -> CommunityInvoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status != CommunityInvoiceStatus.DRAFT.value:
            raise ValidationError(f"Only DRAFT invoices can be approved (status is {invoice.status})")
        entity_type = EmailEntityType.COMMUNITY_INVOICE.value
        now = now_utc()
        with self._tx():
            if self._queue.get_live_for_entity(entity_type, invoice.id):
                raise ConflictError("Invoice is already queued for email")
            invoice.status = CommunityInvoiceStatus.QUEUED.value
            invoice.approved_at = now
            invoice.approved_by_id = actor.user_id
            invoice.queued_at = now
            invoice.view_token = secrets.token_hex(VIEW_TOKEN_BYTES)
            item = self._queue.add(
                EmailQueueItem(
                    entity_type=entity_type,
                    entity_id=invoice.id,
                    context=EmailContext.COMMUNITY.value,
                    status=EmailQueueStatus.QUEUED.value,
                    queued_by_id=actor.user_id,
                    queued_at=now,
                    attempts=0,
                )
            )
            self._audit.record(AuditAction.APPROVE, "CommunityInvoice", invoice.id, user_id=actor.user_id)
            self._audit.record(AuditAction.QUEUE, "EmailQueueItem", item.id, user_id=actor.user_id, metadata={"community_invoice_id": invoice.id})
        logger.info("Community invoice %s approved and queued by user %s", invoice.id, actor.user_id)
        return invoice

    def reject_invoice(self, actor: SessionUser, invoice_id: int, reason: Optional[str] = None) -> CommunityInvoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status != CommunityInvoiceStatus.DRAFT.value:
            raise ValidationError(f"Only DRAFT invoices can be rejected (status is {invoice.status})")
        with self._tx():
            invoice.status = CommunityInvoiceStatus.REJECTED.value
            invoice.rejected_at = now_utc()
            invoice.rejected_by_id = actor.user_id
            invoice.rejection_reason = optional_str(reason)
            self._audit.record(
                AuditAction.REJECT,
                "CommunityInvoice",
                invoice.id,
                user_id=actor.user_id,
                metadata={"reason": invoice.rejection_reason},
            )
        return invoice
