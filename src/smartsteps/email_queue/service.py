from __future__ import annotations

import logging
import uuid
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from ..audit.service import AuditLogger
from ..common.datetime_utils import now_utc
from ..common.validators import parse_int
from ..community.repository import CommunityRepository
from ..core.enums import (
    AuditAction,
    CommunityInvoiceStatus,
    EmailContext,
    EmailEntityType,
    EmailQueueStatus,
    TimesheetStatus,
)
from ..core.exceptions import NotFoundError, ValidationError
from ..pdf.community_pdf import render_community_invoice_pdf
from ..pdf.common import fmt_date, fmt_money
from ..pdf.timesheet_pdf import render_timesheet_pdf
from ..permissions.model import SessionUser
from ..timesheets.repository import TimesheetRepository
from .mailer import Attachment, Mailer, render_email
from .model import EmailQueueItem
from .repository import EmailQueueRepository

logger = logging.getLogger(__name__)

Transaction = Callable[[], AbstractContextManager]

MAX_ERROR_LENGTH = 1000


@dataclass
class _Prepared:
    item: EmailQueueItem
    entity: Any
    attachment: Attachment
    line: str


@dataclass
class BatchResult:
    batch_id: Optional[str] = None
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def _context(value: Any) -> str:
    try:
        return EmailContext(str(value or EmailContext.MAIN.value).upper()).value
    except ValueError:
        raise ValidationError(f"Unknown email queue context: {value}")


def _id_list(raw: Any, label: str = "ids") -> list[int]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{label} must be a non-empty list")
    return [parse_int(i, "id") for i in raw]


class EmailQueueService:
    """Drains the email queue: one email per batch with every approved PDF attached."""

    def __init__(
        self,
        queue: EmailQueueRepository,
        *,
        timesheets: TimesheetRepository,
        community: CommunityRepository,
        mailer: Mailer,
        audit: AuditLogger,
        transaction: Transaction,
        recipients: Mapping[str, Sequence[str]],
        app_url: str = "",
    ):
        self._queue = queue
        self._timesheets = timesheets
        self._community = community
        self._mailer = mailer
        self._audit = audit
        self._tx = transaction
        self._recipients = recipients
        self._app_url = app_url.rstrip("/")

    # ---- reads / housekeeping ----

    def list(self, *, context: Any = None, status: Optional[str] = None) -> list[dict]:
        return [i.to_dict() for i in self._queue.list_items(context=_context(context), status=status or None)]

    def count_queued(self) -> int:
        return self._queue.count_status(EmailQueueStatus.QUEUED.value)

    def _get(self, item_id: int, context: str) -> EmailQueueItem:
        item = self._queue.get_by_id(item_id)
        if not item or item.context != context:
            raise NotFoundError("Queue item not found")
        return item

    def delete(self, actor: SessionUser, item_id: int, *, context: Any = None) -> None:
        item = self._get(item_id, _context(context))
        if item.status == EmailQueueStatus.SENDING.value:
            raise ValidationError("Item is being sent and cannot be removed")
        with self._tx():
            item.soft_delete()
            self._audit.record(AuditAction.DELETE, "EmailQueueItem", item.id, user_id=actor.user_id)

    def bulk_delete(self, actor: SessionUser, ids: Any, *, context: Any = None) -> dict:
        ctx = _context(context)
        items = [i for i in self._queue.list_by_ids(_id_list(ids)) if i.context == ctx]
        deleted = 0
        with self._tx():
            for item in items:
                if item.status == EmailQueueStatus.SENDING.value:
                    continue
                item.soft_delete()
                deleted += 1
                self._audit.record(AuditAction.DELETE, "EmailQueueItem", item.id, user_id=actor.user_id)
        return {"deleted": deleted}

    def resend(self, actor: SessionUser, ids: Any = None, *, context: Any = None) -> dict:
        """Move FAILED items (all of the context, or only ``ids``) back to QUEUED."""
        ctx = _context(context)
        if ids is None:
            items = self._queue.list_items(context=ctx, status=EmailQueueStatus.FAILED.value)
        else:
            items = [i for i in self._queue.list_by_ids(_id_list(ids)) if i.context == ctx]
        requeued = 0
        with self._tx():
            for item in items:
                if item.status != EmailQueueStatus.FAILED.value:
                    continue
                item.status = EmailQueueStatus.QUEUED.value
                item.last_error = None
                if item.entity_type == EmailEntityType.COMMUNITY_INVOICE.value:
                    invoice = self._community.get_invoice(item.entity_id)
                    if invoice is not None and invoice.status == CommunityInvoiceStatus.FAILED.value:
                        invoice.status = CommunityInvoiceStatus.QUEUED.value
                requeued += 1
                self._audit.record(AuditAction.QUEUE, "EmailQueueItem", item.id, user_id=actor.user_id, metadata={"resend": True})
        return {"requeued": requeued}

    # ---- sending ----

    def send_batch(self, actor: Optional[SessionUser], context: Any = None, ids: Any = None) -> dict:
        ctx = _context(context)
        selected = None if ids is None else _id_list(ids)
        user_id = actor.user_id if actor else None
        result = BatchResult()

        with self._tx():
            items = list(self._queue.lock_queued(ctx, selected))
        if not items:
            logger.info("Email queue %s: nothing to send", ctx)
            return result.to_dict()

        prepared: list[_Prepared] = []
        entities = self._load_entities(ctx, items)
        with self._tx():
            for item in items:
                entity = entities.get((item.entity_type, item.entity_id))
                if entity is None:
                    result.skipped += 1
                    self._fail(item, "Document no longer exists", user_id)
                    continue
                try:
                    prepared.append(self._prepare(item, entity))
                except Exception as exc:
                    logger.exception("PDF render failed for queue item %s", item.id)
                    result.failed += 1
                    result.errors.append(f"Item {item.id}: {exc}")
                    self._fail(item, f"PDF generation failed: {exc}", user_id)

        if not prepared:
            logger.warning("Email queue %s: no PDFs generated, batch not sent", ctx)
            return result.to_dict()

        batch_id = uuid.uuid4().hex
        recipients = [r for r in self._recipients.get(ctx, ()) if r]
        subject = self._subject(ctx, len(prepared))
        html = render_email("batch.html", count=len(prepared), context=ctx, lines=[p.line for p in prepared], batch_id=batch_id)
        try:
            self._mailer.send(to=recipients, subject=subject, html=html, attachments=[p.attachment for p in prepared])
        except Exception as exc:
            logger.exception("Batch email %s failed (%s, %d item(s))", batch_id, ctx, len(prepared))
            with self._tx():
                for p in prepared:
                    self._fail(p.item, str(exc), user_id)
            result.failed += len(prepared)
            result.errors.append(str(exc))
            return result.to_dict()

        now = now_utc()
        with self._tx():
            for p in prepared:
                p.item.status = EmailQueueStatus.SENT.value
                p.item.sent_at = now
                p.item.attempts = (p.item.attempts or 0) + 1
                p.item.batch_id = batch_id
                p.item.subject = subject
                p.item.recipients = ",".join(recipients)
                p.item.last_error = None
                if p.item.entity_type == EmailEntityType.COMMUNITY_INVOICE.value:
                    p.entity.status = CommunityInvoiceStatus.EMAILED.value
                else:
                    p.entity.status = TimesheetStatus.EMAILED.value
                p.entity.emailed_at = now
                self._audit.record(
                    AuditAction.EMAIL_SENT,
                    "EmailQueueItem",
                    p.item.id,
                    user_id=user_id,
                    metadata={"batch_id": batch_id, "entity_type": p.item.entity_type, "entity_id": p.item.entity_id},
                )
        result.batch_id = batch_id
        result.sent = len(prepared)
        logger.info("Batch email %s sent with %d attachment(s) to %d recipient(s)", batch_id, result.sent, len(recipients))
        return result.to_dict()

    def _fail(self, item: EmailQueueItem, error: str, user_id: Optional[int]) -> None:
        item.status = EmailQueueStatus.FAILED.value
        item.attempts = (item.attempts or 0) + 1
        item.last_error = error[:MAX_ERROR_LENGTH]
        if item.entity_type == EmailEntityType.COMMUNITY_INVOICE.value:
            invoice = self._community.get_invoice(item.entity_id)
            if invoice is not None:
                invoice.status = CommunityInvoiceStatus.FAILED.value
        self._audit.record(AuditAction.EMAIL_FAILED, "EmailQueueItem", item.id, user_id=user_id, metadata={"error": item.last_error})

    def _load_entities(self, ctx: str, items: Sequence[EmailQueueItem]) -> dict:
        ids = [i.entity_id for i in items]
        if ctx == EmailContext.COMMUNITY.value:
            return {(EmailEntityType.COMMUNITY_INVOICE.value, inv.id): inv for inv in self._community.list_invoices_by_ids(ids)}
        out = {}
        for ts in self._timesheets.list_by_ids(ids):
            kind = EmailEntityType.BCBA.value if ts.is_bcba else EmailEntityType.REGULAR.value
            out[(kind, ts.id)] = ts
        return out

    def _prepare(self, item: EmailQueueItem, entity: Any) -> _Prepared:
        if item.entity_type == EmailEntityType.COMMUNITY_INVOICE.value:
            public_url = None
            if entity.view_token and self._app_url:
                public_url = f"{self._app_url}/api/public/community/invoice/{entity.id}?token={entity.view_token}"
            content = render_community_invoice_pdf(entity, public_url=public_url)
            client = entity.client.full_name if entity.client else ""
            klass = entity.community_class.name if entity.community_class else ""
            return _Prepared(
                item=item,
                entity=entity,
                attachment=Attachment(f"community-invoice-{entity.id}.pdf", content),
                line=f"Invoice #{entity.id} - {client} - {klass} - {fmt_money(entity.total_amount)}",
            )

        content = render_timesheet_pdf(entity)
        number = entity.timesheet_number or str(entity.id)
        client = entity.client.name if entity.client else ""
        return _Prepared(
            item=item,
            entity=entity,
            attachment=Attachment(f"{number}.pdf", content),
            line=f"{number} - {client} - {fmt_date(entity.start_date)} to {fmt_date(entity.end_date)}",
        )

    @staticmethod
    def _subject(ctx: str, count: int) -> str:
        if ctx == EmailContext.COMMUNITY.value:
            return f"Smart Steps: {count} community class invoice(s)"
        return f"Smart Steps: {count} approved timesheet(s)"
