from __future__ import annotations

from contextlib import nullcontext
from decimal import Decimal
from typing import Optional

import pytest

from smartsteps.core.enums import UserRole
from smartsteps.core.exceptions import ValidationError
from smartsteps.payroll.model import PayrollEmployee, PayrollImport, PayrollRun
from smartsteps.payroll.service import PayrollImportService, PayrollRunService, gross_pay, to_hours
from smartsteps.permissions.model import SessionUser

ADMIN = SessionUser(user_id=1, email="admin@example.com", full_name="Admin", role=UserRole.SUPER_ADMIN)

PUNCHES = b"""Badge,When
E1,2025-03-03 08:00
E1,2025-03-03 12:00
E1,2025-03-03 13:00
E1,2025-03-03 17:30
Z9,2025-03-03 09:00
Z9,2025-03-03 10:00
"""


class InMemoryPayroll:
    def __init__(self, employees: list[PayrollEmployee]):
        self.employees = {e.id: e for e in employees}
        self.imports: dict[int, PayrollImport] = {}
        self.runs: dict[int, PayrollRun] = {}

    def add(self, record):
        if isinstance(record, PayrollImport):
            record.id = len(self.imports) + 1
            self.imports[record.id] = record
        elif isinstance(record, PayrollRun):
            record.id = len(self.runs) + 1
            for i, line in enumerate(record.lines, start=1):
                line.id = i
            self.runs[record.id] = record
        return record

    def get_employee(self, employee_id: int) -> Optional[PayrollEmployee]:
        return self.employees.get(employee_id)

    def list_employees_by_ids(self, ids):
        return [self.employees[i] for i in ids if i in self.employees]

    def match_employee(self, code: str) -> Optional[PayrollEmployee]:
        code = code.lower()
        return next(
            (e for e in self.employees.values() if (e.scanner_code or "").lower() == code or e.display_name.lower() == code),
            None,
        )

    def find_recent_import(self, file_name: str, since):
        return next((i for i in self.imports.values() if i.file_name == file_name), None)

    def get_import(self, import_id: int):
        return self.imports.get(import_id)

    def import_rows(self, import_id: int, *, employee_ids, start=None, end=None):
        return [r for r in self.imports[import_id].rows if r.employee_id in employee_ids]

    def count_runs_for_import(self, import_id: int) -> int:
        return sum(1 for r in self.runs.values() if r.import_id == import_id)

    def delete_import(self, record) -> None:
        self.imports.pop(record.id, None)

    def get_run(self, run_id: int):
        return self.runs.get(run_id)

    def get_line(self, run_id: int, line_id: int):
        return next((line for line in self.runs[run_id].lines if line.id == line_id), None)


class NullAudit:
    def record(self, *args, **kwargs):
        pass


@pytest.fixture()
def repo():
    return InMemoryPayroll([PayrollEmployee(id=7, display_name="Ana Ruiz", scanner_code="e1", hourly_rate=Decimal("20"), active=True)])


def _import(repo) -> dict:
    svc = PayrollImportService(repo, NullAudit(), nullcontext, default_timezone="America/New_York")
    return svc.process(ADMIN, "march.csv", PUNCHES, {"employee": "Badge", "timestamp": "When"})


def test_money_helpers_round_half_up():
    assert to_hours(50) == Decimal("0.83")
    assert gross_pay(Decimal("1.005"), Decimal("1")) == Decimal("1.01")


def test_process_links_employees_and_stores_shifts(repo):
    result = _import(repo)

    assert result == {"import_id": 1, "imported_rows": 6, "skipped_rows": 0, "total_rows": 6}
    record = repo.imports[1]
    linked = [r for r in record.rows if r.employee_id == 7]
    assert [r.minutes for r in linked] == [240, 270]
    assert all(r.employee_name == "Ana Ruiz" for r in linked)
    unlinked = [r for r in record.rows if r.employee_id is None]
    assert unlinked[0].employee_code == "Z9"
    assert record.timezone == "America/New_York"
    assert str(record.period_start) == "2025-03-03"


def test_same_file_twice_is_rejected(repo):
    _import(repo)
    with pytest.raises(ValidationError) as exc:
        _import(repo)
    assert exc.value.details == {"import_id": 1}


def test_run_totals_payments_and_status(repo):
    _import(repo)
    runs = PayrollRunService(repo, NullAudit(), nullcontext)

    run = runs.create(ADMIN, {"name": "March", "import_id": 1, "employee_ids": [7]})
    [line] = run.lines
    assert line.hours == Decimal("8.50")
    assert line.gross == Decimal("170.00")
    assert run.total_owed == Decimal("170.00")
    assert run.status == "DRAFT"

    with pytest.raises(ValidationError):
        runs.add_payment(ADMIN, run.id, line.id, {"amount": "10", "paid_on": "2025-03-31"})

    runs.approve(ADMIN, run.id)
    runs.add_payment(ADMIN, run.id, line.id, {"amount": "100", "paid_on": "2025-03-31"})
    assert run.status == "PARTIALLY_PAID"
    assert line.owed == Decimal("70.00")

    with pytest.raises(ValidationError):
        runs.add_payment(ADMIN, run.id, line.id, {"amount": "70.01", "paid_on": "2025-03-31"})

    runs.add_payment(ADMIN, run.id, line.id, {"amount": "70", "payment_date": "2025-04-01"})
    assert run.status == "PAID"
    assert run.total_paid == Decimal("170.00")


def test_rate_override_wins(repo):
    _import(repo)
    run = PayrollRunService(repo, NullAudit(), nullcontext).create(
        ADMIN, {"name": "March", "import_id": 1, "employee_ids": [7], "rate_overrides": {"7": "25"}}
    )
    assert run.lines[0].gross == Decimal("212.50")


def test_run_requires_rows_and_fields(repo):
    _import(repo)
    runs = PayrollRunService(repo, NullAudit(), nullcontext)
    with pytest.raises(ValidationError):
        runs.create(ADMIN, {"name": "March", "import_id": 1})
    with pytest.raises(ValidationError):
        runs.create(ADMIN, {"name": "March", "import_id": 1, "employee_ids": [99]})


def test_import_used_by_run_cannot_be_deleted(repo):
    _import(repo)
    PayrollRunService(repo, NullAudit(), nullcontext).create(ADMIN, {"name": "March", "import_id": 1, "employee_ids": [7]})
    imports = PayrollImportService(repo, NullAudit(), nullcontext)
    with pytest.raises(ValidationError):
        imports.delete(ADMIN, 1)
