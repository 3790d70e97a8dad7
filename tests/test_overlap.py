from datetime import date

import pytest

from smartsteps.core.exceptions import ValidationError
from smartsteps.timesheets.overlap import ExistingSlot, Slot, find_conflicts, ranges_overlap
from smartsteps.timesheets.service import parse_entries

MONDAY = date(2025, 1, 6)
SATURDAY = date(2025, 1, 11)


def test_touching_ranges_do_not_overlap():
    assert not ranges_overlap(9 * 60, 10 * 60, 10 * 60, 11 * 60)
    assert ranges_overlap(9 * 60, 10 * 60 + 1, 10 * 60, 11 * 60)


def test_internal_overlap_is_reported():
    incoming = [Slot(MONDAY, "09:00", "10:00"), Slot(MONDAY, "09:30", "10:30", "SV")]
    conflicts = find_conflicts(incoming, [], provider_id=1, client_id=2)

    assert len(conflicts) == 1
    assert conflicts[0]["scope"] == "internal"
    assert conflicts[0]["code"] == "OVERLAP_CONFLICT"


def test_existing_overlap_scopes():
    incoming = [Slot(MONDAY, "09:00", "10:00")]
    existing = [
        ExistingSlot(MONDAY, "09:30", "10:30", entry_id=1, timesheet_id=10, provider_id=1, client_id=2),
        ExistingSlot(MONDAY, "09:45", "11:00", entry_id=2, timesheet_id=11, provider_id=1, client_id=99),
        ExistingSlot(MONDAY, "08:00", "09:15", entry_id=3, timesheet_id=12, provider_id=7, client_id=2),
        ExistingSlot(MONDAY, "09:00", "10:00", entry_id=4, timesheet_id=13, provider_id=7, client_id=99),
    ]
    conflicts = find_conflicts(incoming, existing, provider_id=1, client_id=2)

    assert [c["scope"] for c in conflicts] == ["both", "provider", "client"]
    assert conflicts[0]["conflicting"]["timesheet_id"] == 10


def test_other_days_are_ignored():
    incoming = [Slot(MONDAY, "09:00", "10:00")]
    existing = [ExistingSlot(date(2025, 1, 7), "09:00", "10:00", provider_id=1, client_id=2)]
    assert find_conflicts(incoming, existing, provider_id=1, client_id=2) == []


def test_parse_entries_normalises_rows():
    entries = parse_entries(
        [
            {"date": "2025-01-06", "start_time": "9:00", "end_time": "10:15"},
            {"date": "2025-01-06T00:00:00Z", "start_time": "11:00", "end_time": "11:30", "kind": "sv"},
        ]
    )

    assert entries[0].start_time == "09:00"
    assert entries[0].minutes == 75
    assert entries[0].kind == "DR"
    assert entries[1].kind == "SV"
    assert entries[1].date == MONDAY


@pytest.mark.parametrize(
    "raw, message",
    [
        ([], "At least one entry"),
        ([{"date": "2025-01-06", "start_time": "09:00"}], "date, start_time, and end_time"),
        ([{"date": "2025-01-11", "start_time": "09:00", "end_time": "10:00"}], "Saturdays"),
        ([{"date": "2025-01-06", "start_time": "10:00", "end_time": "09:00"}], "End time must be after"),
        ([{"date": "2025-01-06", "start_time": "25:00", "end_time": "26:00"}], "Invalid time format"),
        ([{"date": "2025-01-06", "start_time": "09:00", "end_time": "10:00", "minutes": 45}], "Minutes mismatch"),
    ],
)
def test_parse_entries_rejects_bad_rows(raw, message):
    with pytest.raises(ValidationError) as exc:
        parse_entries(raw)
    assert message in exc.value.message


def test_minutes_within_one_of_range_are_accepted():
    [entry] = parse_entries([{"date": "2025-01-06", "start_time": "09:00", "end_time": "10:00", "minutes": 59}])
    assert entry.minutes == 59
