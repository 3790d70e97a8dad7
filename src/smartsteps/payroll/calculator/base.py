from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class PunchPair:
    employee_code: str
    work_date: date
    in_time: Optional[datetime]
    out_time: Optional[datetime]
    break_minutes: int = 0


class PayrollCalculator(ABC):
    """Calculator interface (Strategy Pattern for payroll)."""

    @abstractmethod
    def worked_minutes(self, pair: PunchPair) -> int:
        raise NotImplementedError
