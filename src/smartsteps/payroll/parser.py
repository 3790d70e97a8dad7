"""Time clock export parsing: column preview and punch pairing."""

from __future__ import annotations

import hashlib
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional

import pandas as pd

from ..common.tabular import cell, read_table
from ..core.constants import PAYROLL_PREVIEW_ROWS
from ..core.enums import PunchType
from ..core.exceptions import ValidationError
from .calculator.base import PunchPair


@dataclass(frozen=True)
class ColumnMapping:
    employee: str
    timestamp: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    event: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ColumnMapping":
        def pick(*keys: str) -> Optional[str]:
            for key in keys:
                value = cell(payload.get(key))
                if value:
                    return value
            return None

        mapping = cls(
            employee=pick("employee", "employee_column", "employeeColumn") or "",
            timestamp=pick("timestamp", "timestamp_column", "timestampColumn"),
            date=pick("date", "date_column", "dateColumn"),
            time=pick("time", "time_column", "timeColumn"),
            event=pick("event", "event_column", "eventTypeColumn"),
        )
        if not mapping.employee:
            raise ValidationError("Employee column mapping is required")
        if not mapping.timestamp and not (mapping.date and mapping.time):
            raise ValidationError("Either timestamp column or both date and time columns are required")
        return mapping

    def columns(self) -> list[str]:
        return [c for c in (self.employee, self.timestamp, self.date, self.time, self.event) if c]


@dataclass(frozen=True)
class Punch:
    employee_code: str
    at: datetime
    event: Optional[str]
    signature: str


@dataclass
class ParsedPunches:
    punches: list[Punch]
    row_count: int
    skipped: int


def file_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def row_signature(employee: str, at: datetime, event: Optional[str]) -> str:
    return hashlib.sha256(f"{employee}|{at.isoformat()}|{event or ''}".encode("utf-8")).hexdigest()


def preview(filename: str, content: bytes) -> dict:
    df = read_table(filename, content)
    head = df.head(PAYROLL_PREVIEW_ROWS)
    rows = [{col: cell(value) for col, value in rec.items()} for rec in head.to_dict(orient="records")]
    return {"columns": list(df.columns), "rows": rows, "total_rows": int(len(df))}


def _parse_moment(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    value = pd.to_datetime(raw, errors="coerce")
    if value is None or pd.isna(value):
        return None
    moment = value.to_pydatetime()
    if moment.tzinfo is not None:
        moment = moment.replace(tzinfo=None)
    return moment


def extract_punches(filename: str, content: bytes, mapping: ColumnMapping) -> ParsedPunches:
    df = read_table(filename, content)
    missing = [c for c in mapping.columns() if c not in df.columns]
    if missing:
        raise ValidationError(f"Column(s) not found in file: {', '.join(missing)}")

    punches: list[Punch] = []
    seen: set[str] = set()
    skipped = 0
    for rec in df.to_dict(orient="records"):
        employee = cell(rec.get(mapping.employee))
        if not employee:
            skipped += 1
            continue
        if mapping.timestamp:
            at = _parse_moment(cell(rec.get(mapping.timestamp)))
        else:
            day, clock = cell(rec.get(mapping.date)), cell(rec.get(mapping.time))
            at = _parse_moment(f"{day} {clock}") if day and clock else None
        if at is None:
            skipped += 1
            continue

        event = None
        if mapping.event:
            raw_event = (cell(rec.get(mapping.event)) or "").upper()
            if raw_event in (PunchType.IN.value, PunchType.OUT.value):
                event = raw_event

        signature = row_signature(employee, at, event)
        if signature in seen:
            skipped += 1
            continue
        seen.add(signature)
        punches.append(Punch(employee_code=employee, at=at, event=event, signature=signature))

    return ParsedPunches(punches=punches, row_count=int(len(df)), skipped=skipped)


def pair_punches(punches: list[Punch]) -> list[tuple[PunchPair, str]]:
    """Group punches per employee per day and pair them into shifts.

    Punches with an event type pair IN with the next OUT; otherwise they
    alternate IN/OUT in time order. An unmatched punch becomes a shift with
    one side missing. Each pair carries the signature of its first punch.
    """
    buckets: dict[tuple[str, date], list[Punch]] = defaultdict(list)
    for p in punches:
        buckets[(p.employee_code, p.at.date())].append(p)

    pairs: list[tuple[PunchPair, str]] = []
    for (code, day), items in sorted(buckets.items(), key=lambda kv: (kv[0][1], kv[0][0])):
        items.sort(key=lambda p: p.at)
        typed = any(p.event for p in items)
        open_in: Optional[Punch] = None
        for idx, p in enumerate(items):
            event = p.event if typed else (PunchType.IN.value if idx % 2 == 0 else PunchType.OUT.value)
            if event == PunchType.IN.value:
                if open_in is not None:
                    pairs.append((PunchPair(code, day, open_in.at, None), open_in.signature))
                open_in = p
            elif event == PunchType.OUT.value:
                if open_in is not None:
                    pairs.append((PunchPair(code, day, open_in.at, p.at), open_in.signature))
                    open_in = None
                else:
                    pairs.append((PunchPair(code, day, None, p.at), p.signature))
        if open_in is not None:
            pairs.append((PunchPair(code, day, open_in.at, None), open_in.signature))
    return pairs
