from datetime import date, datetime

from smartsteps.payroll.calculator.base import PunchPair
from smartsteps.payroll.calculator.standard_calculator import StandardPayrollCalculator


def test_standard_calculator_subtracts_break():
    pair = PunchPair(
        employee_code="E1",
        work_date=date(2025, 1, 1),
        in_time=datetime(2025, 1, 1, 8, 0),
        out_time=datetime(2025, 1, 1, 17, 0),
        break_minutes=60,
    )

    calc = StandardPayrollCalculator()
    assert calc.worked_minutes(pair) == 8 * 60


def test_standard_calculator_unpaired_punch_counts_zero():
    pair = PunchPair("E1", date(2025, 1, 1), datetime(2025, 1, 1, 8, 0), None)
    assert StandardPayrollCalculator().worked_minutes(pair) == 0


def test_standard_calculator_never_negative():
    pair = PunchPair(
        "E1",
        date(2025, 1, 1),
        datetime(2025, 1, 1, 8, 0),
        datetime(2025, 1, 1, 8, 20),
        break_minutes=30,
    )
    assert StandardPayrollCalculator().worked_minutes(pair) == 0
