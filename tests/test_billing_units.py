from dataclasses import dataclass
from decimal import Decimal

from smartsteps.billing.units import community_total, entry_totals, invoice_totals, minutes_to_units


@dataclass
class Row:
    minutes: int
    kind: str


def test_minutes_to_units_quarter_hours():
    assert minutes_to_units(60) == Decimal("4.00")
    assert minutes_to_units(45) == Decimal("3.00")
    assert minutes_to_units(50) == Decimal("3.33")


def test_minutes_to_units_non_positive_is_zero():
    assert minutes_to_units(0) == Decimal("0.00")
    assert minutes_to_units(None) == Decimal("0.00")
    assert minutes_to_units(-15) == Decimal("0.00")


def test_supervision_is_free_on_regular_timesheets():
    units, amount = entry_totals(60, "SV", Decimal("12.50"), is_regular=True)
    assert units == Decimal("4.00")
    assert amount == Decimal("0.00")


def test_supervision_is_billed_on_bcba_timesheets():
    _, amount = entry_totals(60, "SV", Decimal("12.50"), is_regular=False)
    assert amount == Decimal("50.00")


def test_invoice_totals_sum_billable_only():
    rows = [Row(60, "DR"), Row(30, "SV"), Row(15, "DR")]
    totals = invoice_totals(rows, Decimal("10"), is_regular=True)

    assert totals.total_minutes == 105
    assert totals.total_units == Decimal("7.00")
    assert totals.billable_units == Decimal("5.00")
    assert totals.amount == Decimal("50.00")


def test_community_total_rounds_half_up():
    assert community_total(3, "16.675") == Decimal("50.03")
    assert community_total("2", Decimal("20")) == Decimal("40.00")
