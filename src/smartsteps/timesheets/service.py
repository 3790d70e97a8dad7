from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from ..audit.service import AuditLogger
from ..billing.units import minutes_to_units
from ..common.datetime_utils import coerce_date, is_saturday, now_utc
from ..common.validators import hhmm_to_minutes, optional_str, parse_bool, parse_hhmm, parse_int, require_non_empty
from ..core.enums import AuditAction, EmailContext, EmailEntityType, EmailQueueStatus, EntryKind, TimesheetStatus
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..directory.repository import DirectoryRepository
from ..email_queue.mailer import Mailer, render_email
from ..email_queue.model import EmailQueueItem
from ..email_queue.repository import EmailQueueRepository
from ..permissions.model import SessionUser
from ..permissions.resolver import has_permission
from ..users.repository import UserRepository
from .model import Timesheet, TimesheetEntry
from .overlap import Slot, find_conflicts
from .repository import TimesheetFilter, TimesheetRepository

logger = logging.getLogger(__name__)

Transaction = Callable[[], AbstractContextManager]

EDITABLE = (TimesheetStatus.DRAFT.value, TimesheetStatus.REJECTED.value)
DECIDABLE = (TimesheetStatus.DRAFT.value, TimesheetStatus.SUBMITTED.value)
ARCHIVABLE = (TimesheetStatus.APPROVED.value, TimesheetStatus.EMAILED.value)


@dataclass(frozen=True)
class NewEntry:
    date: date
    start_time: str
    end_time: str
    minutes: int
    kind: str
    notes: Optional[str] = None

    def slot(self) -> Slot:
        return Slot(date=self.date, start_time=self.start_time, end_time=self.end_time, kind=self.kind)


@dataclass
class TimesheetDraft:
    is_bcba: bool
    client: Any
    provider: Any
    bcba: Any
    insurance: Any
    start_date: date
    end_date: date
    timezone: str
    service_type: Optional[str]
    session_data: Any
    entries: list[NewEntry]


class OverlapConflictError(ValidationError):
    code = "OVERLAP_CONFLICT"


def _entry_kind(raw: Mapping[str, Any]) -> str:
    value = str(raw.get("kind") or raw.get("notes") or EntryKind.DR.value).strip().upper()
    return EntryKind.SV.value if value == EntryKind.SV.value else EntryKind.DR.value


def parse_entries(raw_entries: Any) -> list[NewEntry]:
    """Validate the entry rows of a timesheet payload."""
    if not isinstance(raw_entries, list) or not raw_entries:
        raise ValidationError("At least one entry is required")

    out: list[NewEntry] = []
    for raw in raw_entries:
        if not isinstance(raw, Mapping):
            raise ValidationError("Each entry must be an object")
        if not raw.get("date") or not raw.get("start_time") or not raw.get("end_time"):
            raise ValidationError("Each entry must have date, start_time, and end_time")

        day = coerce_date(raw.get("date"), "Entry date")
        if is_saturday(day):
            raise ValidationError("Timesheets cannot be created on Saturdays")

        start = parse_hhmm(raw.get("start_time"), "start_time")
        end = parse_hhmm(raw.get("end_time"), "end_time")
        start_m, end_m = hhmm_to_minutes(start), hhmm_to_minutes(end)
        if end_m <= start_m:
            raise ValidationError(f"End time must be after start time. Got {start} - {end}")

        calculated = end_m - start_m
        minutes = parse_int(raw.get("minutes", calculated), "minutes")
        if abs(minutes - calculated) > 1:
            raise ValidationError(f"Minutes mismatch. Expected {calculated}, got {minutes}")
        if minutes <= 0:
            raise ValidationError("Minutes must be greater than 0")

        kind = _entry_kind(raw)
        notes = optional_str(raw.get("notes"))
        out.append(NewEntry(day, start, end, minutes, kind, notes))
    return out


class TimesheetService:
    """Use cases for regular and BCBA timesheets."""

    def __init__(
        self,
        timesheets: TimesheetRepository,
        *,
        clients: DirectoryRepository,
        providers: DirectoryRepository,
        bcbas: DirectoryRepository,
        insurances: DirectoryRepository,
        queue: EmailQueueRepository,
        users: UserRepository,
        mailer: Mailer,
        audit: AuditLogger,
        transaction: Transaction,
        app_url: str = "",
        default_timezone: str = "America/New_York",
    ):
        self._timesheets = timesheets
        self._clients = clients
        self._providers = providers
        self._bcbas = bcbas
        self._insurances = insurances
        self._queue = queue
        self._users = users
        self._mailer = mailer
        self._audit = audit
        self._tx = transaction
        self._app_url = app_url.rstrip("/")
        self._default_tz = default_timezone

    # ---- permissions ----

    @staticmethod
    def _perm(is_bcba: bool, action: str) -> str:
        return f"{'bcbaTimesheets' if is_bcba else 'timesheets'}.{action}"

    def _require(self, actor: SessionUser, is_bcba: bool, action: str) -> None:
        if not has_permission(actor, self._perm(is_bcba, action)):
            raise AuthorizationError("Permission denied")

    def _can_view_all(self, actor: SessionUser, is_bcba: bool) -> bool:
        # `view` only exposes the caller's own timesheets
        return actor.is_admin or has_permission(actor, self._perm(is_bcba, "viewAll"))

    # ---- reads ----

    def get(self, actor: SessionUser, timesheet_id: int) -> Timesheet:
        ts = self._timesheets.get_by_id(timesheet_id)
        if not ts:
            raise NotFoundError("Timesheet not found")
        if not self._visible(actor, ts):
            raise AuthorizationError("Permission denied")
        return ts

    def _visible(self, actor: SessionUser, ts: Timesheet) -> bool:
        return ts.user_id == actor.user_id or self._can_view_all(actor, bool(ts.is_bcba))

    def find_by_number(self, actor: SessionUser, number: str) -> Optional[Timesheet]:
        """None when the number is unknown or belongs to someone the caller cannot see."""
        ts = self._timesheets.find_by_number(number)
        if ts is None or not self._visible(actor, ts):
            return None
        return ts

    def list(self, actor: SessionUser, flt: TimesheetFilter, *, page: int, page_size: int) -> dict:
        is_bcba = bool(flt.is_bcba)
        if not self._can_view_all(actor, is_bcba):
            flt = replace(flt, user_id=actor.user_id)
        items, total = self._timesheets.list_page(flt, page=page, page_size=page_size)
        return {
            "items": [t.to_dict(with_entries=False) for t in items],
            "total": total,
            "page": page,
            "page_size": page_size,
        }

    # ---- validation ----

    def _active(self, repo: DirectoryRepository, record_id: Any, label: str):
        record = repo.get_by_id(parse_int(record_id, f"{label} id"))
        if not record:
            raise ValidationError(f"{label} not found")
        if not record.active:
            raise ValidationError(f"{label} is inactive")
        return record

    def build_draft(self, payload: Mapping[str, Any]) -> TimesheetDraft:
        is_bcba = parse_bool(payload.get("is_bcba"))
        client_id = payload.get("client_id")
        bcba_id = payload.get("bcba_id")
        provider_id = payload.get("provider_id")
        if is_bcba:
            if not client_id or not bcba_id or not payload.get("start_date") or not payload.get("end_date"):
                raise ValidationError("Client, BCBA, Start Date, and End Date are required")
        elif not (provider_id and client_id and bcba_id and payload.get("start_date") and payload.get("end_date")):
            raise ValidationError("Provider, Client, BCBA, Start Date, and End Date are required")

        client = self._active(self._clients, client_id, "Client")
        bcba = self._active(self._bcbas, bcba_id, "BCBA")

        if is_bcba:
            provider = self._providers.get_by_id(parse_int(provider_id, "Provider id")) if provider_id else self._providers.first_active()
            if provider is None:
                raise ValidationError("No active provider available for BCBA timesheet")
        else:
            provider = self._active(self._providers, provider_id, "Provider")

        insurance_id = payload.get("insurance_id")
        if insurance_id:
            insurance = self._active(self._insurances, insurance_id, "Insurance")
        elif is_bcba and client.insurance_id:
            insurance = self._active(self._insurances, client.insurance_id, "Insurance")
        else:
            raise ValidationError("Insurance is required")

        start_date = coerce_date(payload.get("start_date"), "Start date")
        end_date = coerce_date(payload.get("end_date"), "End date")
        if end_date < start_date:
            raise ValidationError("End date must be on or after start date")
        if is_saturday(start_date) or is_saturday(end_date):
            raise ValidationError("Timesheets cannot be created on Saturdays")

        entries = parse_entries(payload.get("entries"))
        return TimesheetDraft(
            is_bcba=is_bcba,
            client=client,
            provider=provider,
            bcba=bcba,
            insurance=insurance,
            start_date=start_date,
            end_date=end_date,
            timezone=optional_str(payload.get("timezone")) or self._default_tz,
            service_type=optional_str(payload.get("service_type")),
            session_data=payload.get("session_data"),
            entries=entries,
        )

    def find_overlaps(
        self,
        *,
        provider,
        client,
        entries: Sequence[NewEntry],
        exclude_timesheet_id: Optional[int] = None,
    ) -> list[dict]:
        provider_id = provider.id if provider is not None else None
        existing = self._timesheets.existing_slots(
            [e.date for e in entries],
            provider_id=provider_id,
            client_id=client.id,
            exclude_timesheet_id=exclude_timesheet_id,
        )
        return find_conflicts(
            [e.slot() for e in entries],
            existing,
            provider_id=provider_id,
            client_id=client.id,
            provider_name=provider.name if provider is not None else "",
            client_name=client.name,
        )

    def check_overlaps(self, payload: Mapping[str, Any]) -> list[dict]:
        if parse_bool(payload.get("is_bcba")):
            return []
        client = self._clients.get_by_id(parse_int(payload.get("client_id"), "client_id"))
        if not client:
            raise ValidationError("Client not found")
        provider = None
        if payload.get("provider_id"):
            provider = self._providers.get_by_id(parse_int(payload.get("provider_id"), "provider_id"))
        exclude = payload.get("exclude_timesheet_id")
        return self.find_overlaps(
            provider=provider,
            client=client,
            entries=parse_entries(payload.get("entries")),
            exclude_timesheet_id=int(exclude) if exclude else None,
        )

    def _guard_overlaps(self, draft: TimesheetDraft, exclude_timesheet_id: Optional[int] = None) -> None:
        if draft.is_bcba:
            return
        conflicts = self.find_overlaps(
            provider=draft.provider,
            client=draft.client,
            entries=draft.entries,
            exclude_timesheet_id=exclude_timesheet_id,
        )
        if conflicts:
            raise OverlapConflictError("Overlap conflicts detected", details={"conflicts": conflicts})

    @staticmethod
    def _entry_rows(entries: Iterable[NewEntry]) -> list[TimesheetEntry]:
        return [
            TimesheetEntry(
                date=e.date,
                start_time=e.start_time,
                end_time=e.end_time,
                minutes=e.minutes,
                units=minutes_to_units(e.minutes),
                kind=e.kind,
                notes=e.notes,
                invoiced=False,
            )
            for e in entries
        ]

    # ---- writes ----

    def create(self, actor: SessionUser, payload: Mapping[str, Any]) -> Timesheet:
        draft = self.build_draft(payload)
        self._require(actor, draft.is_bcba, "create")
        self._guard_overlaps(draft)

        with self._tx():
            sequence = self._timesheets.next_sequence(draft.is_bcba)
            ts = Timesheet(
                timesheet_number=f"{'BT' if draft.is_bcba else 'T'}-{sequence:04d}",
                user_id=actor.user_id,
                client_id=draft.client.id,
                provider_id=draft.provider.id if draft.provider is not None else None,
                bcba_id=draft.bcba.id,
                insurance_id=draft.insurance.id,
                is_bcba=draft.is_bcba,
                service_type=draft.service_type,
                session_data=draft.session_data,
                start_date=draft.start_date,
                end_date=draft.end_date,
                timezone=draft.timezone,
                status=TimesheetStatus.DRAFT.value,
                last_edited_by=actor.user_id,
                entries=self._entry_rows(draft.entries),
            )
            self._timesheets.add(ts)
            self._audit.record(
                AuditAction.CREATE,
                "Timesheet",
                ts.id,
                user_id=actor.user_id,
                new_values={"timesheet_number": ts.timesheet_number, "entries": len(draft.entries)},
            )
        logger.info("Timesheet %s created by user %s", ts.id, actor.user_id)
        return ts

    def update(self, actor: SessionUser, timesheet_id: int, payload: Mapping[str, Any]) -> Timesheet:
        ts = self.get(actor, timesheet_id)
        if ts.user_id != actor.user_id:
            self._require(actor, bool(ts.is_bcba), "update")
        if ts.status not in EDITABLE:
            raise ValidationError(f"Only DRAFT or REJECTED timesheets can be edited (status is {ts.status})")

        draft = self.build_draft({**payload, "is_bcba": ts.is_bcba})
        self._guard_overlaps(draft, exclude_timesheet_id=ts.id)

        with self._tx():
            ts.client_id = draft.client.id
            ts.provider_id = draft.provider.id if draft.provider is not None else None
            ts.bcba_id = draft.bcba.id
            ts.insurance_id = draft.insurance.id
            ts.start_date = draft.start_date
            ts.end_date = draft.end_date
            ts.timezone = draft.timezone
            ts.service_type = draft.service_type
            ts.session_data = draft.session_data
            ts.entries = self._entry_rows(draft.entries)
            ts.status = TimesheetStatus.DRAFT.value
            ts.rejection_reason = None
            ts.rejected_at = None
            ts.last_edited_by = actor.user_id
            self._audit.record(AuditAction.UPDATE, "Timesheet", ts.id, user_id=actor.user_id)
        return ts

    def delete(self, actor: SessionUser, timesheet_id: int) -> None:
        ts = self.get(actor, timesheet_id)
        if ts.user_id != actor.user_id:
            self._require(actor, bool(ts.is_bcba), "delete")
        if any(e.invoiced for e in ts.entries):
            raise ValidationError("Timesheet has invoiced entries and cannot be deleted")
        with self._tx():
            ts.soft_delete()
            self._audit.record(AuditAction.DELETE, "Timesheet", ts.id, user_id=actor.user_id)

    def submit(self, actor: SessionUser, timesheet_id: int) -> Timesheet:
        ts = self.get(actor, timesheet_id)
        if ts.user_id != actor.user_id and not actor.is_admin:
            raise AuthorizationError("Only the owner or an admin can submit this timesheet")
        if ts.status != TimesheetStatus.DRAFT.value:
            raise ValidationError("Only DRAFT timesheets can be submitted")
        with self._tx():
            ts.status = TimesheetStatus.SUBMITTED.value
            ts.submitted_at = now_utc()
            self._audit.record(AuditAction.SUBMIT, "Timesheet", ts.id, user_id=actor.user_id)
        self._notify_admins(ts, actor)
        return ts

    def _notify_admins(self, ts: Timesheet, actor: SessionUser) -> None:
        try:
            admins = [u.email for u in self._users.list_active_admins() if u.email]
            if not admins:
                return
            html = render_email(
                "timesheet_submitted.html",
                timesheet=ts,
                client_name=ts.client.name if ts.client else "",
                provider_name=ts.provider.name if ts.provider else "",
                submitted_by=actor.full_name,
                app_url=self._app_url,
            )
            self._mailer.send(to=admins, subject=f"Timesheet {ts.timesheet_number or ts.id} submitted", html=html)
        except Exception:
            logger.exception("Could not notify admins about submitted timesheet %s", ts.id)

    def approve(self, actor: SessionUser, timesheet_id: int) -> Timesheet:
        ts = self.get(actor, timesheet_id)
        self._require(actor, bool(ts.is_bcba), "approve")
        if ts.emailed_at is not None:
            raise ValidationError("Timesheet has already been emailed")
        if ts.status not in DECIDABLE:
            raise ValidationError(f"Only DRAFT or SUBMITTED timesheets can be approved (status is {ts.status})")

        entity_type = EmailEntityType.BCBA.value if ts.is_bcba else EmailEntityType.REGULAR.value
        now = now_utc()
        with self._tx():
            if self._queue.get_live_for_entity(entity_type, ts.id):
                raise ConflictError("Timesheet is already queued for email")
            ts.status = TimesheetStatus.APPROVED.value
            ts.approved_at = now
            ts.queued_at = now
            item = self._queue.add(
                EmailQueueItem(
                    entity_type=entity_type,
                    entity_id=ts.id,
                    context=EmailContext.MAIN.value,
                    status=EmailQueueStatus.QUEUED.value,
                    queued_by_id=actor.user_id,
                    queued_at=now,
                    attempts=0,
                )
            )
            self._audit.record(AuditAction.APPROVE, "Timesheet", ts.id, user_id=actor.user_id)
            self._audit.record(AuditAction.QUEUE, "EmailQueueItem", item.id, user_id=actor.user_id, metadata={"timesheet_id": ts.id})
        return ts

    def reject(self, actor: SessionUser, timesheet_id: int, reason: str) -> Timesheet:
        ts = self.get(actor, timesheet_id)
        self._require(actor, bool(ts.is_bcba), "reject")
        reason = require_non_empty(reason, "Rejection reason")
        if ts.status not in DECIDABLE:
            raise ValidationError(f"Only DRAFT or SUBMITTED timesheets can be rejected (status is {ts.status})")
        with self._tx():
            ts.status = TimesheetStatus.REJECTED.value
            ts.rejection_reason = reason
            ts.rejected_at = now_utc()
            self._audit.record(AuditAction.REJECT, "Timesheet", ts.id, user_id=actor.user_id, metadata={"reason": reason})
        return ts

    def archive(self, actor: SessionUser, timesheet_ids: Sequence[Any]) -> dict:
        if not isinstance(timesheet_ids, list) or not timesheet_ids:
            raise ValidationError("timesheet_ids must be a non-empty list")
        ids = [parse_int(i, "timesheet id") for i in timesheet_ids]
        found = {t.id: t for t in self._timesheets.list_by_ids(ids)}

        archived: list[int] = []
        skipped: list[dict] = []
        now = now_utc()
        with self._tx():
            for tid in ids:
                ts = found.get(tid)
                if ts is None:
                    skipped.append({"id": tid, "reason": "not found"})
                    continue
                if not has_permission(actor, self._perm(bool(ts.is_bcba), "update")):
                    skipped.append({"id": tid, "reason": "permission denied"})
                    continue
                if ts.status not in ARCHIVABLE:
                    skipped.append({"id": tid, "reason": f"status {ts.status}"})
                    continue
                ts.status = TimesheetStatus.ARCHIVED.value
                ts.archived_at = now
                archived.append(tid)
            if archived:
                self._audit.record(AuditAction.UPDATE, "Timesheet", None, user_id=actor.user_id, metadata={"archived": archived})
        return {"archived": archived, "skipped": skipped}

    def count_by_status(self) -> dict[str, int]:
        return self._timesheets.count_by_status()
