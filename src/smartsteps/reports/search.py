from __future__ import annotations

import re
from typing import Optional

from ..core.exceptions import AuthorizationError, ValidationError
from ..invoices.repository import InvoiceRepository
from ..permissions.model import SessionUser
from ..permissions.resolver import has_permission
from ..timesheets.repository import TimesheetRepository
from ..timesheets.service import TimesheetService

TIMESHEET_NUMBER = re.compile(r"^B?T-\d+$")
INVOICE_NUMBER = re.compile(r"^INV-\d{4}-\d+$")


class SearchService:
    """Look up a timesheet or invoice by its printed number."""

    def __init__(self, timesheet_service: TimesheetService, timesheets: TimesheetRepository, invoices: InvoiceRepository):
        self._timesheet_service = timesheet_service
        self._timesheets = timesheets
        self._invoices = invoices

    def search(self, actor: SessionUser, query: Optional[str]) -> dict:
        number = (query or "").strip().upper()
        if not number:
            raise ValidationError("Search query is required")
        if TIMESHEET_NUMBER.match(number):
            return self._timesheet(actor, number)
        if INVOICE_NUMBER.match(number):
            return self._invoice(actor, number)
        raise ValidationError("Invalid search format. Use T-1001, BT-1002, or INV-2026-0001")

    def _timesheet(self, actor: SessionUser, number: str) -> dict:
        ts = self._timesheet_service.find_by_number(actor, number)
        if ts is None:
            return {"type": "timesheet", "timesheet": None, "invoice": None, "message": f"Timesheet {number} not found"}

        invoice_id = ts.invoice_id or next((e.invoice_id for e in ts.entries if e.invoice_id), None)
        invoice = self._invoices.get_by_id(invoice_id) if invoice_id else None
        visible = invoice if invoice and has_permission(actor, "invoices.view") else None
        return {
            "type": "timesheet",
            "timesheet": ts.to_dict(with_entries=False),
            "invoice": visible.to_dict() if visible else None,
            "message": "Timesheet is invoiced" if invoice else "Timesheet is unbilled",
        }

    def _invoice(self, actor: SessionUser, number: str) -> dict:
        if not has_permission(actor, "invoices.view"):
            raise AuthorizationError("Permission denied")
        invoice = self._invoices.find_by_number(number)
        if invoice is None:
            return {"type": "invoice", "invoice": None, "timesheets": [], "message": f"Invoice {number} not found"}
        timesheets = self._timesheets.list_for_invoice(invoice.id)
        return {
            "type": "invoice",
            "invoice": invoice.to_dict(),
            "timesheets": [t.to_dict(with_entries=False) for t in timesheets],
            "message": f"Invoice covers {len(timesheets)} timesheet(s)",
        }
