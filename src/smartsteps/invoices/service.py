from __future__ import annotations

import logging
import secrets
from collections import OrderedDict
from contextlib import AbstractContextManager
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Sequence

from ..audit.service import AuditLogger
from ..billing.units import entry_totals
from ..common.datetime_utils import coerce_date, now_utc, week_end, week_start
from ..common.validators import optional_str, parse_decimal, parse_int, require_non_empty
from ..core.constants import VIEW_TOKEN_BYTES
from ..core.enums import AuditAction, InvoiceStatus
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..permissions.model import SessionUser
from ..timesheets.model import Timesheet
from ..timesheets.repository import TimesheetRepository
from .model import Invoice, InvoiceAdjustment, InvoiceEntry, Payment
from .repository import InvoiceRepository

logger = logging.getLogger(__name__)

Transaction = Callable[[], AbstractContextManager]

ZERO = Decimal("0.00")
APPROVABLE = (InvoiceStatus.DRAFT.value, InvoiceStatus.READY.value)


def _fmt_week(start: date, end: date) -> str:
    return f"{start.strftime('%b %d, %Y')} to {end.strftime('%b %d, %Y')}"


def regular_rate(insurance) -> Decimal:
    """``regular_rate_per_unit`` when set, else the legacy flat rate."""
    if insurance.regular_rate_per_unit:
        return Decimal(insurance.regular_rate_per_unit)
    return Decimal(insurance.rate_per_unit or 0)


def bcba_rate(insurance) -> Decimal:
    if insurance.bcba_rate_per_unit:
        return Decimal(insurance.bcba_rate_per_unit)
    return regular_rate(insurance)


def apply_payment_status(invoice: Invoice) -> None:
    if invoice.outstanding <= 0:
        invoice.status = InvoiceStatus.PAID.value
    elif invoice.paid_amount > 0:
        invoice.status = InvoiceStatus.PARTIALLY_PAID.value


class InvoiceService:
    def __init__(
        self,
        invoices: InvoiceRepository,
        timesheets: TimesheetRepository,
        audit: AuditLogger,
        transaction: Transaction,
        *,
        token_days: int = 30,
    ):
        self._invoices = invoices
        self._timesheets = timesheets
        self._audit = audit
        self._tx = transaction
        self._token_days = token_days

    # ---- generation ----

    def generate(self, actor: Optional[SessionUser], timesheet_ids: Optional[Sequence[Any]] = None) -> dict:
        """Create one DRAFT invoice per client and Monday-to-Sunday week.

        ``timesheet_ids=None`` considers every invoiceable timesheet (used by
        the scheduled job).
        """
        if timesheet_ids is not None:
            if not isinstance(timesheet_ids, list) or not timesheet_ids:
                raise ValidationError("No timesheets selected")
            timesheet_ids = [parse_int(t, "timesheet id") for t in timesheet_ids]

        timesheets = self._timesheets.list_invoiceable(timesheet_ids)
        if timesheet_ids is not None and not timesheets:
            raise ValidationError("No eligible timesheets found. Timesheets must be APPROVED or EMAILED and not deleted.")

        groups: "OrderedDict[tuple[int, date], list[Timesheet]]" = OrderedDict()
        for ts in timesheets:
            if not any(not e.invoiced for e in ts.entries):
                continue
            groups.setdefault((ts.client_id, week_start(ts.start_date)), []).append(ts)

        created: list[str] = []
        skipped: list[str] = []
        errors: list[str] = []
        counter = self._invoices.count_all()
        user_id = actor.user_id if actor else None

        for (client_id, start), group in groups.items():
            client = group[0].client
            end = week_end(start)
            insurance = group[0].insurance or (client.insurance if client else None)
            if insurance is None:
                errors.append(f'MISSING_INSURANCE_RATE: Client "{client.name}" has no insurance assigned')
                continue
            rate = regular_rate(insurance)
            if rate <= 0:
                errors.append(f'MISSING_INSURANCE_RATE: Client "{client.name}" has invalid or missing rate per unit')
                continue
            if any(ts.is_bcba for ts in group):
                rate = bcba_rate(insurance)

            existing = self._invoices.find_overlapping(client_id, start, end)
            if existing:
                skipped.append(
                    f'Client "{client.name}" - Week {_fmt_week(start, end)} (Invoice {existing.invoice_number} already exists)'
                )
                continue

            number = f"INV-{now_utc().year}-{counter + 1:04d}"
            try:
                self._create_invoice(number, client_id, start, end, group, insurance, rate, user_id)
            except Exception as exc:
                logger.exception("Invoice generation failed for client %s week %s", client_id, start)
                errors.append(f'Failed to create invoice for client "{client.name}": {exc}')
                continue
            counter += 1
            created.append(number)

        return {"created": created, "skipped": skipped, "errors": errors}

    def _create_invoice(
        self,
        number: str,
        client_id: int,
        start: date,
        end: date,
        group: list[Timesheet],
        insurance,
        rate: Decimal,
        user_id: Optional[int],
    ) -> Invoice:
        lines: list[InvoiceEntry] = []
        total = ZERO
        pending_entries = []
        for ts in group:
            for entry in ts.entries:
                if entry.invoiced:
                    continue
                units, amount = entry_totals(entry.minutes, entry.kind, rate, not ts.is_bcba)
                total += amount
                pending_entries.append(entry)
                lines.append(
                    InvoiceEntry(
                        timesheet_id=ts.id,
                        timesheet_entry_id=entry.id,
                        provider_id=ts.provider_id,
                        insurance_id=insurance.id,
                        units=units,
                        rate=rate,
                        amount=amount,
                    )
                )

        with self._tx():
            invoice = self._invoices.add(
                Invoice(
                    invoice_number=number,
                    client_id=client_id,
                    start_date=start,
                    end_date=end,
                    total_amount=total,
                    paid_amount=ZERO,
                    adjustments=ZERO,
                    outstanding=total,
                    status=InvoiceStatus.DRAFT.value,
                    created_by=user_id,
                    entries=lines,
                )
            )
            now = now_utc()
            for entry in pending_entries:
                entry.invoiced = True
                entry.invoice_id = invoice.id
            for ts in group:
                if ts.invoice_id is None:
                    ts.invoice_id = invoice.id
                    ts.invoiced_at = now
            self._audit.record(
                AuditAction.GENERATE,
                "Invoice",
                invoice.id,
                user_id=user_id,
                new_values={
                    "invoice_number": number,
                    "client_id": client_id,
                    "total_amount": str(total),
                    "timesheet_count": len(group),
                },
            )
        logger.info("Invoice %s created for client %s (%s)", number, client_id, total)
        return invoice

    # ---- reads ----

    def list(self, *, page: int, page_size: int, status: Optional[str] = None, client_id: Optional[int] = None) -> dict:
        items, total = self._invoices.list_page(page=page, page_size=page_size, status=status, client_id=client_id)
        return {"items": [i.to_dict() for i in items], "total": total, "page": page, "page_size": page_size}

    def get(self, invoice_id: int) -> Invoice:
        invoice = self._invoices.get_by_id(invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    def get_public(self, invoice_id: int, token: Optional[str]) -> Invoice:
        invoice = self._invoices.get_by_id(invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found")
        if not token or not invoice.view_token or not secrets.compare_digest(token, invoice.view_token):
            raise AuthorizationError("Invalid invoice link")
        if invoice.token_expires_at and invoice.token_expires_at < now_utc():
            raise AuthorizationError("Invoice link has expired")
        return invoice

    def outstanding_total(self) -> Decimal:
        return self._invoices.outstanding_total()

    # ---- writes ----

    def update(self, actor: SessionUser, invoice_id: int, payload: Mapping[str, Any]) -> Invoice:
        invoice = self.get(invoice_id)
        with self._tx():
            if "notes" in payload:
                invoice.notes = optional_str(payload.get("notes"))
            if payload.get("status") == InvoiceStatus.READY.value and invoice.status == InvoiceStatus.DRAFT.value:
                invoice.status = InvoiceStatus.READY.value
            if payload.get("status") == InvoiceStatus.VOID.value:
                if invoice.paid_amount > 0:
                    raise ValidationError("An invoice with payments cannot be voided")
                invoice.status = InvoiceStatus.VOID.value
            self._audit.record(AuditAction.UPDATE, "Invoice", invoice.id, user_id=actor.user_id, new_values={"status": invoice.status})
        return invoice

    def delete(self, actor: SessionUser, invoice_id: int) -> None:
        invoice = self.get(invoice_id)
        if invoice.paid_amount > 0:
            raise ValidationError("An invoice with payments cannot be deleted")
        with self._tx():
            invoice.soft_delete()
            # release the entries so they can be invoiced again
            for line in invoice.entries:
                entry = line.timesheet_entry
                if entry is None:
                    continue
                entry.invoiced = False
                entry.invoice_id = None
                if entry.timesheet is not None and entry.timesheet.invoice_id == invoice.id:
                    entry.timesheet.invoice_id = None
                    entry.timesheet.invoiced_at = None
            self._audit.record(AuditAction.DELETE, "Invoice", invoice.id, user_id=actor.user_id)

    def approve(self, actor: SessionUser, invoice_id: int) -> Invoice:
        invoice = self.get(invoice_id)
        if invoice.status not in APPROVABLE:
            raise ValidationError(f"Only DRAFT or READY invoices can be approved (status is {invoice.status})")
        now = now_utc()
        with self._tx():
            invoice.status = InvoiceStatus.SENT.value
            invoice.sent_at = now
            invoice.view_token = secrets.token_hex(VIEW_TOKEN_BYTES)
            invoice.token_expires_at = now + timedelta(days=self._token_days)
            self._audit.record(AuditAction.APPROVE, "Invoice", invoice.id, user_id=actor.user_id)
        return invoice

    def add_payment(self, actor: SessionUser, invoice_id: int, payload: Mapping[str, Any]) -> Payment:
        invoice = self.get(invoice_id)
        if invoice.status == InvoiceStatus.VOID.value:
            raise ValidationError("Cannot record a payment on a void invoice")
        if payload.get("amount") in (None, "") or not payload.get("payment_date"):
            raise ValidationError("Amount and payment date are required")
        amount = parse_decimal(payload.get("amount"), "Amount")
        if amount <= 0:
            raise ValidationError("Amount must be greater than 0")
        paid_on = coerce_date(payload.get("payment_date"), "Payment date")

        with self._tx():
            payment = Payment(
                amount=amount,
                payment_date=paid_on,
                method=optional_str(payload.get("method")),
                reference=optional_str(payload.get("reference")),
                notes=optional_str(payload.get("notes")),
                created_by=actor.user_id,
            )
            invoice.payments.append(payment)
            invoice.paid_amount = Decimal(invoice.paid_amount or 0) + amount
            invoice.outstanding = Decimal(invoice.total_amount) + Decimal(invoice.adjustments or 0) - invoice.paid_amount
            apply_payment_status(invoice)
            self._audit.record(
                AuditAction.PAYMENT,
                "Invoice",
                invoice.id,
                user_id=actor.user_id,
                metadata={"amount": str(amount), "outstanding": str(invoice.outstanding), "status": invoice.status},
            )
        return payment

    def add_adjustment(self, actor: SessionUser, invoice_id: int, payload: Mapping[str, Any]) -> InvoiceAdjustment:
        invoice = self.get(invoice_id)
        if payload.get("amount") in (None, "", 0, "0"):
            raise ValidationError("Amount and reason are required")
        amount = parse_decimal(payload.get("amount"), "Amount")
        reason = require_non_empty(payload.get("reason"), "Reason")

        with self._tx():
            adjustment = InvoiceAdjustment(amount=amount, reason=reason, created_by=actor.user_id)
            invoice.adjustment_rows.append(adjustment)
            invoice.adjustments = Decimal(invoice.adjustments or 0) + amount
            invoice.outstanding = Decimal(invoice.total_amount) + invoice.adjustments - Decimal(invoice.paid_amount or 0)
            self._audit.record(
                AuditAction.ADJUSTMENT,
                "Invoice",
                invoice.id,
                user_id=actor.user_id,
                metadata={"amount": str(amount), "reason": reason, "outstanding": str(invoice.outstanding)},
            )
        return adjustment
