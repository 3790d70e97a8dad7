from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Protocol, Sequence

from .model import Timesheet
from .overlap import ExistingSlot


@dataclass(frozen=True)
class TimesheetFilter:
    is_bcba: Optional[bool] = None
    status: Optional[str] = None
    client_id: Optional[int] = None
    provider_id: Optional[int] = None
    user_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    bcba_id: Optional[int] = None
    insurance_id: Optional[int] = None
    statuses: Optional[tuple[str, ...]] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


class TimesheetRepository(Protocol):
    def get_by_id(self, timesheet_id: int) -> Optional[Timesheet]:
        raise NotImplementedError

    def find_by_number(self, number: str) -> Optional[Timesheet]:
        raise NotImplementedError

    def list_for_invoice(self, invoice_id: int) -> Sequence[Timesheet]:
        """Timesheets with at least one entry billed on the invoice."""
        raise NotImplementedError

    def list_page(self, flt: TimesheetFilter, *, page: int, page_size: int) -> tuple[Sequence[Timesheet], int]:
        raise NotImplementedError

    def list_filtered(self, flt: TimesheetFilter) -> Sequence[Timesheet]:
        raise NotImplementedError

    def list_by_ids(self, ids: Iterable[int]) -> Sequence[Timesheet]:
        raise NotImplementedError

    def list_invoiceable(self, ids: Optional[Iterable[int]] = None) -> Sequence[Timesheet]:
        """Live APPROVED or EMAILED timesheets, optionally restricted to ``ids``."""
        raise NotImplementedError

    def existing_slots(
        self,
        dates: Iterable[date],
        *,
        provider_id: Optional[int],
        client_id: int,
        exclude_timesheet_id: Optional[int] = None,
    ) -> Sequence[ExistingSlot]:
        """Entries of live regular timesheets on ``dates`` for the provider or the client."""
        raise NotImplementedError

    def next_sequence(self, is_bcba: bool) -> int:
        raise NotImplementedError

    def add(self, timesheet: Timesheet) -> Timesheet:
        raise NotImplementedError

    def count_by_status(self) -> dict[str, int]:
        raise NotImplementedError
