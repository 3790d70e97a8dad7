from __future__ import annotations

from contextlib import nullcontext
from decimal import Decimal
from typing import Optional

import pytest

from smartsteps.community.model import CommunityInvoice
from smartsteps.community.service import CommunityService
from smartsteps.core.enums import UserRole
from smartsteps.core.exceptions import AuthorizationError, ConflictError, ValidationError
from smartsteps.email_queue.model import EmailQueueItem
from smartsteps.email_queue.service import EmailQueueService
from smartsteps.permissions.model import SessionUser

ADMIN = SessionUser(user_id=1, email="admin@example.com", full_name="Admin", role=UserRole.SUPER_ADMIN)


class InMemoryCommunity:
    def __init__(self):
        self.rows: dict[tuple[str, int], object] = {}
        self._id = 0

    def add(self, record):
        self._id += 1
        record.id = self._id
        self.rows[(type(record).__name__, record.id)] = record
        return record

    def _get(self, kind: str, record_id: int):
        record = self.rows.get((kind, record_id))
        return None if record is None or record.deleted_at else record

    def get_client(self, client_id: int):
        return self._get("CommunityClient", client_id)

    def list_clients(self):
        return [r for (k, _), r in self.rows.items() if k == "CommunityClient" and not r.deleted_at]

    def get_class(self, class_id: int):
        return self._get("CommunityClass", class_id)

    def list_classes(self, *, active_only: bool = False):
        return [r for (k, _), r in self.rows.items() if k == "CommunityClass" and not r.deleted_at]

    def get_invoice(self, invoice_id: int):
        return self._get("CommunityInvoice", invoice_id)

    def list_invoices_by_ids(self, ids):
        return [r for r in (self.get_invoice(i) for i in ids) if r is not None]


class InMemoryQueue:
    def __init__(self):
        self.items: dict[int, EmailQueueItem] = {}

    def add(self, item: EmailQueueItem) -> EmailQueueItem:
        item.id = len(self.items) + 1
        self.items[item.id] = item
        return item

    def get_by_id(self, item_id: int) -> Optional[EmailQueueItem]:
        return self.items.get(item_id)

    def get_live_for_entity(self, entity_type: str, entity_id: int) -> Optional[EmailQueueItem]:
        return next(
            (i for i in self.items.values() if i.entity_type == entity_type and i.entity_id == entity_id and not i.deleted_at),
            None,
        )

    def list_items(self, *, context=None, status=None):
        return [
            i
            for i in self.items.values()
            if not i.deleted_at and (context is None or i.context == context) and (status is None or i.status == status)
        ]

    def list_by_ids(self, ids):
        return [self.items[i] for i in ids if i in self.items]

    def lock_queued(self, context: str, ids=None):
        locked = []
        for item in self.list_items(context=context, status="QUEUED"):
            if ids is not None and item.id not in ids:
                continue
            item.status = "SENDING"
            locked.append(item)
        return locked

    def count_status(self, status: str) -> int:
        return len(self.list_items(status=status))


class NullTimesheets:
    def list_by_ids(self, ids):
        return []


class RecordingAudit:
    def __init__(self):
        self.actions = []

    def record(self, action, entity_type, entity_id=None, **kwargs):
        self.actions.append(getattr(action, "value", action))


class FakeMailer:
    def __init__(self, error: Optional[Exception] = None):
        self.sent = []
        self.error = error

    def send(self, *, to, subject, html, attachments=()):
        if self.error:
            raise self.error
        self.sent.append({"to": list(to), "subject": subject, "html": html, "attachments": list(attachments)})
        return "msg-1"


@pytest.fixture()
def community():
    return InMemoryCommunity()


@pytest.fixture()
def queue():
    return InMemoryQueue()


@pytest.fixture()
def audit():
    return RecordingAudit()


@pytest.fixture()
def service(community, queue, audit):
    return CommunityService(community, queue, audit, nullcontext)


def _queue_service(community, queue, audit, mailer) -> EmailQueueService:
    return EmailQueueService(
        queue,
        timesheets=NullTimesheets(),
        community=community,
        mailer=mailer,
        audit=audit,
        transaction=nullcontext,
        recipients={"MAIN": ["billing@example.com"], "COMMUNITY": ["community@example.com"]},
        app_url="http://testserver",
    )


def _invoice(service: CommunityService, units=3) -> CommunityInvoice:
    client = service.create_client(ADMIN, {"first_name": "Lia", "last_name": "Moreno", "medicaid_id": "M-1"})
    klass = service.create_class(ADMIN, {"name": "Social Skills", "rate_per_unit": "16.50"})
    invoice = service.create_invoice(ADMIN, {"client_id": client.id, "class_id": klass.id, "units": units})
    invoice.client = client
    invoice.community_class = klass
    return invoice


def test_create_invoice_copies_rate_and_totals(service):
    invoice = _invoice(service, units=4)

    assert invoice.status == "DRAFT"
    assert invoice.rate_per_unit == Decimal("16.50")
    assert invoice.total_amount == Decimal("66.00")
    assert invoice.unit_minutes == 30


@pytest.mark.parametrize("payload", [{}, {"client_id": 1, "class_id": 1, "units": 0}, {"client_id": 1, "class_id": 1}])
def test_create_invoice_requires_client_class_and_units(service, payload):
    with pytest.raises(ValidationError) as exc:
        service.create_invoice(ADMIN, payload)
    assert exc.value.message == "Client, class, and units (positive number) are required"


def test_update_recomputes_total_for_drafts(service):
    invoice = _invoice(service)
    service.update_invoice(ADMIN, invoice.id, {"units": 2})
    assert invoice.total_amount == Decimal("33.00")


def test_approve_queues_invoice_once(service, queue):
    invoice = _invoice(service)
    service.approve_invoice(ADMIN, invoice.id)

    assert invoice.status == "QUEUED"
    assert invoice.view_token
    [item] = queue.items.values()
    assert (item.entity_type, item.context, item.status) == ("COMMUNITY_INVOICE", "COMMUNITY", "QUEUED")

    invoice.status = "DRAFT"
    with pytest.raises(ConflictError):
        service.approve_invoice(ADMIN, invoice.id)


def test_reject_only_from_draft(service):
    invoice = _invoice(service)
    service.reject_invoice(ADMIN, invoice.id, "  wrong class ")
    assert invoice.status == "REJECTED"
    assert invoice.rejection_reason == "wrong class"

    with pytest.raises(ValidationError):
        service.reject_invoice(ADMIN, invoice.id)


def test_public_view_requires_matching_token(service):
    invoice = _invoice(service)
    service.approve_invoice(ADMIN, invoice.id)

    assert service.get_public(invoice.id, invoice.view_token) is invoice
    with pytest.raises(AuthorizationError):
        service.get_public(invoice.id, "bogus")
    with pytest.raises(AuthorizationError):
        service.get_public(invoice.id, None)


def test_delete_invoice_drops_queued_item(service, queue):
    invoice = _invoice(service)
    service.approve_invoice(ADMIN, invoice.id)
    service.delete_invoice(ADMIN, invoice.id)

    assert invoice.deleted_at is not None
    assert queue.list_items() == []


def test_send_batch_emails_all_queued_invoices(service, community, queue, audit):
    first, second = _invoice(service), _invoice(service, units=1)
    service.approve_invoice(ADMIN, first.id)
    service.approve_invoice(ADMIN, second.id)
    mailer = FakeMailer()

    result = _queue_service(community, queue, audit, mailer).send_batch(ADMIN, "community")

    assert result["sent"] == 2
    assert result["failed"] == 0
    assert result["batch_id"]
    [email] = mailer.sent
    assert email["to"] == ["community@example.com"]
    assert len(email["attachments"]) == 2
    assert all(a.content.startswith(b"%PDF") for a in email["attachments"])
    assert {i.status for i in queue.items.values()} == {"SENT"}
    assert {i.batch_id for i in queue.items.values()} == {result["batch_id"]}
    assert first.status == second.status == "EMAILED"
    assert first.emailed_at is not None
    assert audit.actions.count("EMAIL_SENT") == 2


def test_send_batch_with_empty_queue_sends_nothing(community, queue, audit):
    mailer = FakeMailer()
    result = _queue_service(community, queue, audit, mailer).send_batch(ADMIN, "COMMUNITY")
    assert result == {"batch_id": None, "sent": 0, "failed": 0, "skipped": 0, "errors": []}
    assert mailer.sent == []


def test_mailer_failure_marks_items_failed_and_resend_requeues(service, community, queue, audit):
    invoice = _invoice(service)
    service.approve_invoice(ADMIN, invoice.id)
    failing = _queue_service(community, queue, audit, FakeMailer(RuntimeError("SES down")))

    result = failing.send_batch(ADMIN, "COMMUNITY")

    assert result["failed"] == 1
    [item] = queue.items.values()
    assert item.status == "FAILED"
    assert item.attempts == 1
    assert item.last_error == "SES down"
    assert invoice.status == "FAILED"

    assert failing.resend(ADMIN, context="COMMUNITY") == {"requeued": 1}
    assert item.status == "QUEUED"
    assert invoice.status == "QUEUED"


def test_missing_document_is_skipped(service, community, queue, audit):
    invoice = _invoice(service)
    service.approve_invoice(ADMIN, invoice.id)
    invoice.soft_delete()
    mailer = FakeMailer()

    result = _queue_service(community, queue, audit, mailer).send_batch(ADMIN, "COMMUNITY")

    assert result["skipped"] == 1
    assert mailer.sent == []
    assert next(iter(queue.items.values())).status == "FAILED"


def test_unknown_context_is_rejected(community, queue, audit):
    with pytest.raises(ValidationError):
        _queue_service(community, queue, audit, FakeMailer()).send_batch(ADMIN, "OTHER")
