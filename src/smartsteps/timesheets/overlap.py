"""Detect overlapping time entries for regular timesheets.

Two ranges overlap when ``startA < endB and startB < endA``; touching
ranges (one ends exactly when the other starts) are allowed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from ..common.validators import hhmm_to_minutes


@dataclass(frozen=True)
class Slot:
    date: date
    start_time: str
    end_time: str
    kind: str = "DR"

    @property
    def start(self) -> int:
        return hhmm_to_minutes(self.start_time)

    @property
    def end(self) -> int:
        return hhmm_to_minutes(self.end_time)


@dataclass(frozen=True)
class ExistingSlot(Slot):
    entry_id: int = 0
    timesheet_id: int = 0
    provider_id: Optional[int] = None
    client_id: Optional[int] = None


def ranges_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a


def _conflict(slot: Slot, scope: str, message: str, *, provider: dict, client: dict, conflicting: Optional[dict] = None) -> dict:
    out = {
        "code": "OVERLAP_CONFLICT",
        "date": slot.date.isoformat(),
        "start_time": slot.start_time,
        "end_time": slot.end_time,
        "entry_type": slot.kind,
        "scope": scope,
        "provider": provider,
        "client": client,
        "message": message,
    }
    if conflicting:
        out["conflicting"] = conflicting
    return out


def find_conflicts(
    incoming: Sequence[Slot],
    existing: Sequence[ExistingSlot],
    *,
    provider_id: Optional[int],
    client_id: int,
    provider_name: str = "",
    client_name: str = "",
) -> list[dict]:
    provider = {"id": provider_id, "name": provider_name}
    client = {"id": client_id, "name": client_name}
    conflicts: list[dict] = []

    for i, a in enumerate(incoming):
        for b in incoming[i + 1:]:
            if a.date == b.date and ranges_overlap(a.start, a.end, b.start, b.end):
                conflicts.append(
                    _conflict(
                        a,
                        "internal",
                        f"Overlap detected on {a.date.isoformat()}: {a.kind} {a.start_time}-{a.end_time} "
                        f"overlaps with {b.kind} {b.start_time}-{b.end_time} in this timesheet.",
                        provider=provider,
                        client=client,
                    )
                )

    for inc in incoming:
        for ex in existing:
            if ex.date != inc.date or not ranges_overlap(inc.start, inc.end, ex.start, ex.end):
                continue
            provider_match = provider_id is not None and ex.provider_id == provider_id
            client_match = ex.client_id == client_id
            if not (provider_match or client_match):
                continue
            scope = "both" if provider_match and client_match else ("provider" if provider_match else "client")
            who = {"both": "provider and client", "provider": "provider", "client": "client"}[scope]
            conflicts.append(
                _conflict(
                    inc,
                    scope,
                    f"Overlap detected on {inc.date.isoformat()}: {inc.kind} {inc.start_time}-{inc.end_time} "
                    f"overlaps an existing entry {ex.start_time}-{ex.end_time} for the same {who}.",
                    provider=provider,
                    client=client,
                    conflicting={
                        "timesheet_id": ex.timesheet_id,
                        "entry_id": ex.entry_id,
                        "start_time": ex.start_time,
                        "end_time": ex.end_time,
                        "entry_type": ex.kind,
                    },
                )
            )
    return conflicts
