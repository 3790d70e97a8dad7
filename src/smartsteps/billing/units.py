"""Minutes to billing units and amounts.

A unit is a quarter hour; SV (supervision) time on a regular timesheet is
recorded but billed at zero, BCBA timesheets bill every entry.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

from ..core.constants import UNITS_PER_HOUR
from ..core.enums import EntryKind

CENTS = Decimal("0.01")


def _q(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def minutes_to_units(minutes) -> Decimal:
    if minutes is None or minutes <= 0:
        return Decimal("0.00")
    return _q(Decimal(minutes) / Decimal(60) * Decimal(UNITS_PER_HOUR))


def is_billable(kind, is_regular: bool) -> bool:
    return not (is_regular and EntryKind(kind) == EntryKind.SV)


def entry_totals(minutes: int, kind, rate: Decimal, is_regular: bool) -> tuple[Decimal, Decimal]:
    """Return ``(units, amount)`` for one entry."""
    units = minutes_to_units(minutes)
    if not is_billable(kind, is_regular):
        return units, Decimal("0.00")
    return units, _q(units * Decimal(rate))


class BillableEntry(Protocol):
    minutes: int
    kind: str


@dataclass(frozen=True)
class InvoiceTotals:
    total_minutes: int
    total_units: Decimal
    billable_units: Decimal
    amount: Decimal


def invoice_totals(entries: Iterable[BillableEntry], rate: Decimal, is_regular: bool) -> InvoiceTotals:
    total_minutes = 0
    total_units = Decimal("0.00")
    billable_units = Decimal("0.00")
    amount = Decimal("0.00")
    for e in entries:
        units, entry_amount = entry_totals(e.minutes, e.kind, rate, is_regular)
        total_minutes += int(e.minutes or 0)
        total_units += units
        if is_billable(e.kind, is_regular):
            billable_units += units
        amount += entry_amount
    return InvoiceTotals(total_minutes, _q(total_units), _q(billable_units), _q(amount))


def community_total(units, rate) -> Decimal:
    return _q(Decimal(str(units)) * Decimal(str(rate)))
