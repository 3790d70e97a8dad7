from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, Sequence

import pandas as pd

from ..billing.units import invoice_totals
from ..common.datetime_utils import now_utc, parse_iso_date, week_key
from ..common.tabular import to_excel_bytes
from ..core.enums import EmailQueueStatus, EntryKind, TimesheetStatus
from ..core.exceptions import ValidationError
from ..directory.repository import DirectoryRepository
from ..email_queue.repository import EmailQueueRepository
from ..invoices.repository import InvoiceRepository
from ..timesheets.repository import TimesheetFilter, TimesheetRepository

REPORT_COLUMNS = [
    "timesheet_number",
    "type",
    "client",
    "provider",
    "start_date",
    "end_date",
    "status",
    "minutes",
    "hours",
    "units",
    "billable_units",
]

DETAIL_COLUMNS = [
    "date",
    "client",
    "provider",
    "bcba",
    "insurance",
    "type",
    "in_time",
    "out_time",
    "hours",
    "units",
    "status",
    "timesheet_id",
    "timesheet_number",
    "entry_id",
]

# grouping name -> row column ("week" and "timesheet" build their own keys)
GROUPINGS = {"client": "client", "provider": "provider", "insurance": "insurance", "week": None, "timesheet": None}


@dataclass(frozen=True)
class ReportData:
    rows: list[dict]
    summary: dict


class ReportService:
    def __init__(
        self,
        timesheets: TimesheetRepository,
        *,
        invoices: InvoiceRepository,
        queue: EmailQueueRepository,
        clients: DirectoryRepository,
        providers: DirectoryRepository,
    ):
        self._timesheets = timesheets
        self._invoices = invoices
        self._queue = queue
        self._clients = clients
        self._providers = providers

    def dashboard_stats(self) -> dict:
        by_status = self._timesheets.count_by_status()
        return {
            "timesheets": by_status,
            "timesheets_total": sum(by_status.values()),
            "invoices_outstanding": float(self._invoices.outstanding_total()),
            "emails_queued": self._queue.count_status(EmailQueueStatus.QUEUED.value),
            "active_clients": self._clients.count_active(),
            "active_providers": self._providers.count_active(),
        }

    def build_timesheet_report(
        self,
        *,
        start: date,
        end: date,
        client_id: Optional[int] = None,
        provider_id: Optional[int] = None,
    ) -> ReportData:
        if end < start:
            raise ValidationError("end_date must be on or after start_date")
        flt = TimesheetFilter(client_id=client_id, provider_id=provider_id, start_date=start, end_date=end)

        rows: list[dict] = []
        total_minutes = 0
        total_units = Decimal("0.00")
        for ts in self._timesheets.list_filtered(flt):
            totals = invoice_totals(ts.entries, Decimal("0"), not ts.is_bcba)
            total_minutes += totals.total_minutes
            total_units += totals.total_units
            rows.append(
                {
                    "timesheet_number": ts.timesheet_number,
                    "type": "BCBA" if ts.is_bcba else "Regular",
                    "client": ts.client.name if ts.client else "",
                    "provider": ts.provider.name if ts.provider else "",
                    "start_date": ts.start_date.isoformat(),
                    "end_date": ts.end_date.isoformat(),
                    "status": ts.status,
                    "minutes": totals.total_minutes,
                    "hours": round(totals.total_minutes / 60, 2),
                    "units": float(totals.total_units),
                    "billable_units": float(totals.billable_units),
                }
            )
        summary = {
            "timesheets": len(rows),
            "minutes": total_minutes,
            "hours": round(total_minutes / 60, 2),
            "units": float(total_units),
        }
        return ReportData(rows=rows, summary=summary)

    # ---- detailed report ----

    def detailed_report(
        self,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        provider_id: Optional[int] = None,
        client_id: Optional[int] = None,
        bcba_id: Optional[int] = None,
        insurance_id: Optional[int] = None,
        statuses: Sequence[str] = (),
        service_types: Sequence[str] = (),
        grouping: Optional[str] = None,
    ) -> dict:
        """One row per session entry, filtered on the entry date rather than the timesheet period."""
        if start and end and start > end:
            raise ValidationError("Start date must be before end date")
        if grouping and grouping not in GROUPINGS:
            raise ValidationError(f"grouping must be one of: {', '.join(GROUPINGS)}")
        kinds = {str(k).upper() for k in service_types}
        unknown = kinds - {k.value for k in EntryKind}
        if unknown:
            raise ValidationError(f"Unknown service type: {', '.join(sorted(unknown))}")
        flt = TimesheetFilter(
            provider_id=provider_id,
            client_id=client_id,
            bcba_id=bcba_id,
            insurance_id=insurance_id,
            statuses=tuple(s.upper() for s in statuses) or None,
        )

        collected = []
        for ts in self._timesheets.list_filtered(flt):
            for entry in ts.entries:
                if (start and entry.date < start) or (end and entry.date > end):
                    continue
                if kinds and entry.kind not in kinds:
                    continue
                collected.append((entry.date, entry.start_time, _detail_row(ts, entry)))
        collected.sort(key=lambda item: (item[0], item[1]))
        rows = [row for _, _, row in collected]

        frame = pd.DataFrame(rows, columns=DETAIL_COLUMNS)
        data = {"rows": rows, "summary": _detail_summary(frame)}
        if grouping:
            data["groups"] = _detail_groups(frame, rows, grouping)
        return data

    # ---- analytics ----

    def analytics(
        self,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        provider_id: Optional[int] = None,
        client_id: Optional[int] = None,
        bcba_id: Optional[int] = None,
        insurance_id: Optional[int] = None,
    ) -> dict:
        """Business analytics over records created in the range, twelve months back by default."""
        end = end or now_utc().date()
        start = start or (pd.Timestamp(end) - pd.DateOffset(months=12)).date()
        if end < start:
            raise ValidationError("end_date must be on or after start_date")
        created_from = datetime.combine(start, time.min)
        created_to = datetime.combine(end, time.max)

        timesheets = self._timesheets.list_filtered(
            TimesheetFilter(
                provider_id=provider_id,
                client_id=client_id,
                bcba_id=bcba_id,
                insurance_id=insurance_id,
                created_from=created_from,
                created_to=created_to,
            )
        )
        invoices = self._invoices.list_created_between(
            created_from, created_to, client_id=client_id, insurance_id=insurance_id
        )

        ts_frame = pd.DataFrame(
            [
                {
                    "month": ts.created_at.strftime("%Y-%m"),
                    "status": ts.status,
                    "provider": ts.provider.name if ts.provider else "Unassigned",
                    "minutes": ts.total_minutes,
                    "units": float(sum((Decimal(e.units or 0) for e in ts.entries), Decimal("0"))),
                }
                for ts in timesheets
            ],
            columns=["month", "status", "provider", "minutes", "units"],
        )
        inv_frame = pd.DataFrame(
            [
                {
                    "month": inv.created_at.strftime("%Y-%m"),
                    "client": inv.client.name if inv.client else "Unknown",
                    "status": inv.status,
                    "billed": float(inv.total_amount or 0),
                    "paid": float(inv.paid_amount or 0),
                    "adjustments": float(inv.adjustments or 0),
                    "outstanding": float(inv.outstanding or 0),
                }
                for inv in invoices
            ],
            columns=["month", "client", "status", "billed", "paid", "adjustments", "outstanding"],
        )
        months = [p.strftime("%Y-%m") for p in pd.period_range(pd.Timestamp(start), pd.Timestamp(end), freq="M")]

        return {
            "summary": _analytics_summary(ts_frame, inv_frame),
            "revenue_trends": _revenue_trends(inv_frame, months),
            "timesheet_trends": _timesheet_trends(ts_frame, months),
            "provider_productivity": _provider_productivity(ts_frame),
            "client_billing": _client_billing(inv_frame),
            "invoice_status_distribution": _status_counts(inv_frame, lambda s: s.replace("_", " ")),
            "financial_waterfall": _financial_waterfall(inv_frame),
            "insurance_comparisons": _insurance_comparisons(invoices),
            "timesheet_status_breakdown": _status_counts(ts_frame, lambda s: s.capitalize()),
            "filters": {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "provider_id": provider_id,
                "client_id": client_id,
                "bcba_id": bcba_id,
                "insurance_id": insurance_id,
            },
        }


def time_12h(value: Optional[str]) -> str:
    if not value:
        return ""
    hours, minutes = (int(part) for part in value.split(":"))
    return f"{hours % 12 or 12}:{minutes:02d} {'PM' if hours >= 12 else 'AM'}"


def _detail_row(ts, entry) -> dict:
    return {
        "date": entry.date.isoformat(),
        "client": ts.client.name if ts.client else "",
        "provider": ts.provider.name if ts.provider else "",
        "bcba": ts.bcba.name if ts.bcba else "",
        "insurance": ts.insurance.name if ts.insurance else "",
        "type": entry.kind,
        "in_time": time_12h(entry.start_time),
        "out_time": time_12h(entry.end_time),
        "hours": round(int(entry.minutes or 0) / 60, 2),
        "units": float(entry.units or 0),
        "status": ts.status,
        "timesheet_id": ts.id,
        "timesheet_number": ts.timesheet_number,
        "entry_id": entry.id,
    }


def _detail_summary(frame: pd.DataFrame) -> dict:
    dr = frame[frame["type"] == EntryKind.DR.value]
    sv = frame[frame["type"] == EntryKind.SV.value]
    return {
        "total_hours": round(float(frame["hours"].sum()), 2),
        "total_hours_dr": round(float(dr["hours"].sum()), 2),
        "total_hours_sv": round(float(sv["hours"].sum()), 2),
        "total_units": round(float(frame["units"].sum()), 2),
        "total_units_dr": round(float(dr["units"].sum()), 2),
        "total_units_sv": round(float(sv["units"].sum()), 2),
        "session_count": int(len(frame)),
        "timesheet_count": int(frame["timesheet_id"].nunique()),
    }


def _group_key(frame: pd.DataFrame, grouping: str) -> tuple[pd.Series, pd.Series]:
    if grouping == "week":
        mondays = frame["date"].map(lambda d: week_key(parse_iso_date(d)))
        labels = mondays.map(lambda d: f"Week of {parse_iso_date(d).strftime('%b %d, %Y')}")
        return mondays, labels
    if grouping == "timesheet":
        return frame["timesheet_id"].astype(str), "Timesheet " + frame["timesheet_number"].fillna("").astype(str)
    column = GROUPINGS[grouping]
    return frame[column], frame[column]


def _detail_groups(frame: pd.DataFrame, rows: list[dict], grouping: str) -> list[dict]:
    if frame.empty:
        return []
    keys, labels = _group_key(frame, grouping)
    groups = []
    for key, part in frame.groupby(keys, sort=False):
        groups.append(
            {
                "key": str(key),
                "label": str(labels.loc[part.index[0]]),
                "summary": _detail_summary(part),
                "rows": [rows[i] for i in part.index],
            }
        )
    return groups


def _analytics_summary(ts_frame: pd.DataFrame, inv_frame: pd.DataFrame) -> dict:
    return {
        "total_timesheets": int(len(ts_frame)),
        "approved_timesheets": int((ts_frame["status"] == TimesheetStatus.APPROVED.value).sum()),
        "rejected_timesheets": int((ts_frame["status"] == TimesheetStatus.REJECTED.value).sum()),
        "total_invoices": int(len(inv_frame)),
        "total_billed": round(float(inv_frame["billed"].sum()), 2),
        "total_paid": round(float(inv_frame["paid"].sum()), 2),
        "total_outstanding": round(float(inv_frame["outstanding"].sum()), 2),
    }


def _month_label(month: str) -> str:
    return pd.Period(month, freq="M").strftime("%b %Y")


def _revenue_trends(inv_frame: pd.DataFrame, months: list[str]) -> list[dict]:
    sums = inv_frame.groupby("month")[["billed", "paid"]].sum()
    out = []
    for month in months:
        billed = float(sums.at[month, "billed"]) if month in sums.index else 0.0
        paid = float(sums.at[month, "paid"]) if month in sums.index else 0.0
        out.append({"month": month, "label": _month_label(month), "billed": round(billed, 2), "paid": round(paid, 2)})
    return out


def _timesheet_trends(ts_frame: pd.DataFrame, months: list[str]) -> list[dict]:
    out = []
    for month in months:
        part = ts_frame[ts_frame["month"] == month]
        out.append(
            {
                "month": month,
                "label": _month_label(month),
                "created": int(len(part)),
                "approved": int((part["status"] == TimesheetStatus.APPROVED.value).sum()),
                "rejected": int((part["status"] == TimesheetStatus.REJECTED.value).sum()),
            }
        )
    return out


def _provider_productivity(ts_frame: pd.DataFrame) -> list[dict]:
    if ts_frame.empty:
        return []
    grouped = ts_frame.groupby("provider").agg(
        units=("units", "sum"), minutes=("minutes", "sum"), timesheet_count=("status", "size")
    )
    grouped["hours"] = (grouped["minutes"] / 60).round(2)
    grouped = grouped.sort_values("hours", ascending=False).head(10)
    return [
        {"name": name, "units": round(float(row.units), 2), "hours": float(row.hours), "timesheet_count": int(row.timesheet_count)}
        for name, row in grouped.iterrows()
    ]


def _client_billing(inv_frame: pd.DataFrame) -> list[dict]:
    if inv_frame.empty:
        return []
    grouped = inv_frame.groupby("client").agg(
        total_billed=("billed", "sum"),
        total_paid=("paid", "sum"),
        outstanding=("outstanding", "sum"),
        invoice_count=("status", "size"),
    )
    grouped = grouped.sort_values("total_billed", ascending=False)
    return [
        {
            "name": name,
            "total_billed": round(float(row.total_billed), 2),
            "total_paid": round(float(row.total_paid), 2),
            "outstanding": round(float(row.outstanding), 2),
            "invoice_count": int(row.invoice_count),
        }
        for name, row in grouped.iterrows()
    ]


def _status_counts(frame: pd.DataFrame, label) -> list[dict]:
    counts = frame["status"].value_counts(sort=False)
    return [{"status": status, "label": label(status), "count": int(count)} for status, count in counts.items()]


def _financial_waterfall(inv_frame: pd.DataFrame) -> list[dict]:
    billed = float(inv_frame["billed"].sum())
    paid = float(inv_frame["paid"].sum())
    adjustments = float(inv_frame["adjustments"].sum())
    return [
        {"label": "Total Billed", "value": round(billed, 2)},
        {"label": "Total Paid", "value": round(paid, 2)},
        {"label": "Adjustments", "value": round(adjustments, 2)},
        {"label": "Outstanding", "value": round(billed - paid + adjustments, 2)},
    ]


def _insurance_comparisons(invoices) -> list[dict]:
    rows = []
    for inv in invoices:
        total = float(inv.total_amount or 0)
        # payments are spread over lines in proportion to their amount
        ratio = float(inv.paid_amount or 0) / total if total > 0 else 0.0
        for line in inv.entries:
            rows.append(
                {
                    "name": line.insurance.name if line.insurance else "Unknown",
                    "billed": float(line.amount or 0),
                    "paid": float(line.amount or 0) * ratio,
                }
            )
    if not rows:
        return []
    grouped = (
        pd.DataFrame(rows)
        .groupby("name")
        .agg(total_billed=("billed", "sum"), total_paid=("paid", "sum"), invoice_count=("billed", "size"))
        .sort_values("total_billed", ascending=False)
    )
    return [
        {
            "name": name,
            "total_billed": round(float(row.total_billed), 2),
            "total_paid": round(float(row.total_paid), 2),
            "invoice_count": int(row.invoice_count),
        }
        for name, row in grouped.iterrows()
    ]


def report_frame(data: ReportData) -> pd.DataFrame:
    return pd.DataFrame(data.rows, columns=REPORT_COLUMNS)


def report_csv(data: ReportData) -> bytes:
    buf = io.StringIO()
    report_frame(data).to_csv(buf, index=False)
    # BOM so Excel opens it as UTF-8
    return buf.getvalue().encode("utf-8-sig")


def report_xlsx(data: ReportData) -> bytes:
    summary = pd.DataFrame([{"Field": k, "Value": v} for k, v in data.summary.items()])
    return to_excel_bytes({"Timesheets": report_frame(data), "Summary": summary})
