from __future__ import annotations

from contextlib import nullcontext
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from smartsteps.core.enums import UserRole
from smartsteps.core.exceptions import AuthorizationError, ValidationError
from smartsteps.directory.model import Client, Insurance
from smartsteps.invoices.model import Invoice
from smartsteps.invoices.service import InvoiceService, bcba_rate, regular_rate
from smartsteps.permissions.model import SessionUser
from smartsteps.timesheets.model import Timesheet, TimesheetEntry

ADMIN = SessionUser(user_id=1, email="admin@example.com", full_name="Admin", role=UserRole.SUPER_ADMIN)
MONDAY = date(2025, 1, 6)
WEDNESDAY = date(2025, 1, 8)


class InMemoryInvoices:
    def __init__(self):
        self.items: dict[int, Invoice] = {}

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        inv = self.items.get(invoice_id)
        return None if inv is None or inv.deleted_at else inv

    def find_overlapping(self, client_id: int, start: date, end: date) -> Optional[Invoice]:
        for inv in self.items.values():
            if inv.deleted_at is None and inv.client_id == client_id and inv.start_date <= end and start <= inv.end_date:
                return inv
        return None

    def count_all(self) -> int:
        return len(self.items)

    def add(self, invoice: Invoice) -> Invoice:
        invoice.id = len(self.items) + 1
        self.items[invoice.id] = invoice
        return invoice


class InMemoryTimesheets:
    def __init__(self, timesheets: list[Timesheet]):
        self.timesheets = timesheets

    def list_invoiceable(self, ids=None):
        return [
            t
            for t in self.timesheets
            if t.status in ("APPROVED", "EMAILED") and (ids is None or t.id in ids)
        ]


class NullAudit:
    def record(self, *args, **kwargs):
        pass


def _insurance(**rates) -> Insurance:
    return Insurance(id=1, name="Aetna", rate_per_unit=rates.get("rate", Decimal("10")), regular_rate_per_unit=rates.get("regular"), bcba_rate_per_unit=rates.get("bcba"))


def _timesheet(ts_id: int, client: Client, insurance: Insurance, start: date, *, is_bcba=False, status="APPROVED", entries=None) -> Timesheet:
    return Timesheet(
        id=ts_id,
        client_id=client.id,
        client=client,
        insurance=insurance,
        provider_id=5,
        is_bcba=is_bcba,
        status=status,
        start_date=start,
        end_date=start,
        entries=entries
        or [
            TimesheetEntry(id=ts_id * 10 + 1, minutes=60, kind="DR", invoiced=False),
            TimesheetEntry(id=ts_id * 10 + 2, minutes=30, kind="SV", invoiced=False),
        ],
    )


def _service(timesheets: list[Timesheet]) -> tuple[InvoiceService, InMemoryInvoices]:
    invoices = InMemoryInvoices()
    return InvoiceService(invoices, InMemoryTimesheets(timesheets), NullAudit(), nullcontext, token_days=30), invoices


def test_rate_fallbacks():
    assert regular_rate(_insurance(rate=Decimal("9"))) == Decimal("9")
    assert regular_rate(_insurance(regular=Decimal("12"))) == Decimal("12")
    assert bcba_rate(_insurance(regular=Decimal("12"))) == Decimal("12")
    assert bcba_rate(_insurance(bcba=Decimal("30"))) == Decimal("30")


def test_generate_groups_by_client_and_week():
    insurance = _insurance()
    client = Client(id=1, name="Kid A", insurance=insurance)
    first = _timesheet(1, client, insurance, MONDAY)
    second = _timesheet(2, client, insurance, WEDNESDAY)
    svc, invoices = _service([first, second])

    result = svc.generate(ADMIN, [1, 2])

    assert len(result["created"]) == 1
    assert result["created"][0].endswith("-0001")
    [invoice] = invoices.items.values()
    assert invoice.start_date == MONDAY
    assert invoice.end_date == date(2025, 1, 12)
    # two DR hours at 4 units x $10; SV is free on regular timesheets
    assert invoice.total_amount == Decimal("80.00")
    assert invoice.outstanding == Decimal("80.00")
    assert len(invoice.entries) == 4
    assert all(e.invoiced and e.invoice_id == invoice.id for t in (first, second) for e in t.entries)
    assert first.invoice_id == invoice.id


def test_bcba_group_bills_supervision_at_bcba_rate():
    insurance = _insurance(bcba=Decimal("20"))
    client = Client(id=1, name="Kid A", insurance=insurance)
    svc, invoices = _service([_timesheet(1, client, insurance, MONDAY, is_bcba=True)])

    svc.generate(ADMIN, [1])

    [invoice] = invoices.items.values()
    assert invoice.total_amount == Decimal("120.00")


def test_existing_invoice_week_is_skipped():
    insurance = _insurance()
    client = Client(id=1, name="Kid A", insurance=insurance)
    svc, _ = _service([_timesheet(1, client, insurance, MONDAY)])
    svc.generate(ADMIN, [1])

    svc._timesheets.timesheets.append(
        _timesheet(2, client, insurance, WEDNESDAY, entries=[TimesheetEntry(id=99, minutes=15, kind="DR", invoiced=False)])
    )
    result = svc.generate(ADMIN, [2])

    assert result["created"] == []
    assert "already exists" in result["skipped"][0]


def test_missing_rate_is_reported():
    insurance = _insurance(rate=Decimal("0"))
    client = Client(id=1, name="Kid A", insurance=insurance)
    svc, invoices = _service([_timesheet(1, client, insurance, MONDAY)])

    result = svc.generate(ADMIN, [1])

    assert invoices.items == {}
    assert result["errors"][0].startswith("MISSING_INSURANCE_RATE")


class RefusingInvoices(InMemoryInvoices):
    def __init__(self, refused_client_id: int):
        super().__init__()
        self.refused_client_id = refused_client_id

    def add(self, invoice: Invoice) -> Invoice:
        if invoice.client_id == self.refused_client_id:
            raise RuntimeError("duplicate invoice number")
        return super().add(invoice)


def test_failing_group_is_reported_and_others_still_created():
    insurance = _insurance()
    kid_a = Client(id=1, name="Kid A", insurance=insurance)
    kid_b = Client(id=2, name="Kid B", insurance=insurance)
    invoices = RefusingInvoices(refused_client_id=1)
    svc = InvoiceService(
        invoices,
        InMemoryTimesheets([_timesheet(1, kid_a, insurance, MONDAY), _timesheet(2, kid_b, insurance, MONDAY)]),
        NullAudit(),
        nullcontext,
    )

    result = svc.generate(ADMIN, [1, 2])

    assert result["errors"] == ['Failed to create invoice for client "Kid A": duplicate invoice number']
    assert len(result["created"]) == 1
    [invoice] = invoices.items.values()
    assert invoice.client_id == 2
    assert invoice.invoice_number == result["created"][0]


def test_generate_requires_eligible_timesheets():
    insurance = _insurance()
    client = Client(id=1, name="Kid A", insurance=insurance)
    svc, _ = _service([_timesheet(1, client, insurance, MONDAY, status="DRAFT")])

    with pytest.raises(ValidationError):
        svc.generate(ADMIN, [1])
    with pytest.raises(ValidationError):
        svc.generate(ADMIN, [])


def _sent_invoice() -> tuple[InvoiceService, Invoice]:
    insurance = _insurance()
    client = Client(id=1, name="Kid A", insurance=insurance)
    svc, invoices = _service([_timesheet(1, client, insurance, MONDAY)])
    svc.generate(ADMIN, [1])
    invoice = invoices.items[1]
    svc.approve(ADMIN, invoice.id)
    return svc, invoice


def test_payments_move_status_to_partial_then_paid():
    svc, invoice = _sent_invoice()
    assert invoice.status == "SENT"

    svc.add_payment(ADMIN, invoice.id, {"amount": "15.50", "payment_date": "2025-02-01"})
    assert invoice.status == "PARTIALLY_PAID"
    assert invoice.outstanding == Decimal("24.50")

    svc.add_payment(ADMIN, invoice.id, {"amount": 24.5, "payment_date": "2025-02-03", "method": "check"})
    assert invoice.status == "PAID"
    assert invoice.outstanding == Decimal("0.00")
    assert len(invoice.payments) == 2


def test_payment_validation():
    svc, invoice = _sent_invoice()
    with pytest.raises(ValidationError):
        svc.add_payment(ADMIN, invoice.id, {"amount": "10"})
    with pytest.raises(ValidationError):
        svc.add_payment(ADMIN, invoice.id, {"amount": "-1", "payment_date": "2025-02-01"})


def test_adjustment_changes_outstanding_only():
    svc, invoice = _sent_invoice()
    svc.add_adjustment(ADMIN, invoice.id, {"amount": "-5", "reason": "Courtesy discount"})

    assert invoice.adjustments == Decimal("-5")
    assert invoice.outstanding == Decimal("35.00")
    assert invoice.status == "SENT"
    with pytest.raises(ValidationError):
        svc.add_adjustment(ADMIN, invoice.id, {"amount": "3"})


def test_public_link_checks_token():
    svc, invoice = _sent_invoice()
    assert svc.get_public(invoice.id, invoice.view_token) is invoice
    with pytest.raises(AuthorizationError):
        svc.get_public(invoice.id, "wrong")
