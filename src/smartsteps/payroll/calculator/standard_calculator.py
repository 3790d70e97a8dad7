from __future__ import annotations

from .base import PayrollCalculator, PunchPair


class StandardPayrollCalculator(PayrollCalculator):
    """Standard rule: (out - in) - break_minutes, not below 0; unpaired punches count 0."""

    def worked_minutes(self, pair: PunchPair) -> int:
        if not pair.in_time or not pair.out_time:
            return 0
        minutes = int((pair.out_time - pair.in_time).total_seconds() // 60)
        minutes -= int(pair.break_minutes or 0)
        return max(minutes, 0)
