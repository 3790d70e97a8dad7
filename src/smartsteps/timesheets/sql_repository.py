from __future__ import annotations

import re
from datetime import date
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, or_, select

from ..core.enums import TimesheetStatus
from ..database.extensions import db
from .model import Timesheet, TimesheetEntry
from .overlap import ExistingSlot
from .repository import TimesheetFilter, TimesheetRepository

FIRST_SEQUENCE = 1001


class SQLTimesheetRepository(TimesheetRepository):
    def get_by_id(self, timesheet_id: int) -> Optional[Timesheet]:
        return Timesheet.live().filter(Timesheet.id == timesheet_id).first()

    def find_by_number(self, number: str) -> Optional[Timesheet]:
        return Timesheet.live().filter(Timesheet.timesheet_number == number).first()

    def list_for_invoice(self, invoice_id: int) -> Sequence[Timesheet]:
        billed = select(TimesheetEntry.timesheet_id).where(TimesheetEntry.invoice_id == invoice_id)
        return (
            Timesheet.live()
            .filter(or_(Timesheet.invoice_id == invoice_id, Timesheet.id.in_(billed)))
            .order_by(Timesheet.start_date.asc(), Timesheet.id.asc())
            .all()
        )

    def _filtered(self, flt: TimesheetFilter):
        q = Timesheet.live()
        if flt.is_bcba is not None:
            q = q.filter(Timesheet.is_bcba.is_(flt.is_bcba))
        if flt.status:
            q = q.filter(Timesheet.status == flt.status)
        if flt.client_id:
            q = q.filter(Timesheet.client_id == flt.client_id)
        if flt.provider_id:
            q = q.filter(Timesheet.provider_id == flt.provider_id)
        if flt.user_id:
            q = q.filter(Timesheet.user_id == flt.user_id)
        if flt.start_date:
            q = q.filter(Timesheet.end_date >= flt.start_date)
        if flt.end_date:
            q = q.filter(Timesheet.start_date <= flt.end_date)
        if flt.bcba_id:
            q = q.filter(Timesheet.bcba_id == flt.bcba_id)
        if flt.insurance_id:
            q = q.filter(Timesheet.insurance_id == flt.insurance_id)
        if flt.statuses:
            q = q.filter(Timesheet.status.in_(list(flt.statuses)))
        if flt.created_from:
            q = q.filter(Timesheet.created_at >= flt.created_from)
        if flt.created_to:
            q = q.filter(Timesheet.created_at <= flt.created_to)
        return q

    def list_page(self, flt: TimesheetFilter, *, page: int, page_size: int) -> tuple[Sequence[Timesheet], int]:
        q = self._filtered(flt)
        total = q.count()
        items = (
            q.order_by(Timesheet.start_date.desc(), Timesheet.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def list_filtered(self, flt: TimesheetFilter) -> Sequence[Timesheet]:
        return self._filtered(flt).order_by(Timesheet.start_date.asc(), Timesheet.id.asc()).all()

    def list_by_ids(self, ids: Iterable[int]) -> Sequence[Timesheet]:
        ids = list(ids)
        if not ids:
            return []
        return Timesheet.live().filter(Timesheet.id.in_(ids)).all()

    def list_invoiceable(self, ids: Optional[Iterable[int]] = None) -> Sequence[Timesheet]:
        q = Timesheet.live().filter(
            Timesheet.status.in_([TimesheetStatus.APPROVED.value, TimesheetStatus.EMAILED.value])
        )
        if ids is not None:
            q = q.filter(Timesheet.id.in_(list(ids)))
        return q.order_by(Timesheet.start_date.asc(), Timesheet.id.asc()).all()

    def existing_slots(
        self,
        dates: Iterable[date],
        *,
        provider_id: Optional[int],
        client_id: int,
        exclude_timesheet_id: Optional[int] = None,
    ) -> Sequence[ExistingSlot]:
        dates = sorted(set(dates))
        if not dates:
            return []
        owner = Timesheet.client_id == client_id
        if provider_id is not None:
            owner = or_(Timesheet.provider_id == provider_id, owner)
        q = (
            db.session.query(TimesheetEntry, Timesheet)
            .join(Timesheet, TimesheetEntry.timesheet_id == Timesheet.id)
            .filter(
                TimesheetEntry.date.in_(dates),
                Timesheet.deleted_at.is_(None),
                Timesheet.is_bcba.is_(False),
                owner,
            )
        )
        if exclude_timesheet_id:
            q = q.filter(Timesheet.id != exclude_timesheet_id)
        return [
            ExistingSlot(
                date=entry.date,
                start_time=entry.start_time,
                end_time=entry.end_time,
                kind=entry.kind,
                entry_id=entry.id,
                timesheet_id=ts.id,
                provider_id=ts.provider_id,
                client_id=ts.client_id,
            )
            for entry, ts in q.all()
        ]

    def next_sequence(self, is_bcba: bool) -> int:
        prefix = "BT-" if is_bcba else "T-"
        numbers = (
            db.session.query(Timesheet.timesheet_number)
            .filter(Timesheet.timesheet_number.like(f"{prefix}%"))
            .all()
        )
        highest = 0
        for (number,) in numbers:
            m = re.match(rf"^{prefix}(\d+)$", number or "")
            if m:
                highest = max(highest, int(m.group(1)))
        return max(highest + 1, FIRST_SEQUENCE)

    def add(self, timesheet: Timesheet) -> Timesheet:
        db.session.add(timesheet)
        db.session.flush()
        return timesheet

    def count_by_status(self) -> dict[str, int]:
        rows = (
            db.session.query(Timesheet.status, func.count(Timesheet.id))
            .filter(Timesheet.deleted_at.is_(None))
            .group_by(Timesheet.status)
            .all()
        )
        return {status: int(count) for status, count in rows}
