from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional, Protocol, Sequence

from .model import PayrollEmployee, PayrollImport, PayrollImportRow, PayrollRun, PayrollRunLine


class PayrollRepository(Protocol):
    # employees
    def get_employee(self, employee_id: int) -> Optional[PayrollEmployee]:
        raise NotImplementedError

    def list_employees(self, *, active_only: bool = False) -> Sequence[PayrollEmployee]:
        raise NotImplementedError

    def list_employees_by_ids(self, ids: Iterable[int]) -> Sequence[PayrollEmployee]:
        raise NotImplementedError

    def match_employee(self, code_or_name: str) -> Optional[PayrollEmployee]:
        """Live employee whose scanner code or display name equals ``code_or_name``."""
        raise NotImplementedError

    # imports
    def get_import(self, import_id: int) -> Optional[PayrollImport]:
        raise NotImplementedError

    def find_recent_import(self, file_name: str, since: datetime) -> Optional[PayrollImport]:
        raise NotImplementedError

    def list_imports(self) -> Sequence[PayrollImport]:
        raise NotImplementedError

    def get_import_row(self, row_id: int) -> Optional[PayrollImportRow]:
        raise NotImplementedError

    def import_rows(
        self,
        import_id: int,
        *,
        employee_ids: Optional[Iterable[int]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Sequence[PayrollImportRow]:
        raise NotImplementedError

    def employee_rows(self, employee_id: int, start: date, end: date) -> Sequence[PayrollImportRow]:
        raise NotImplementedError

    def delete_import(self, record: PayrollImport) -> None:
        raise NotImplementedError

    # runs
    def get_run(self, run_id: int) -> Optional[PayrollRun]:
        raise NotImplementedError

    def list_runs(self, *, status: Optional[str] = None) -> Sequence[PayrollRun]:
        raise NotImplementedError

    def count_runs_for_import(self, import_id: int) -> int:
        raise NotImplementedError

    def get_line(self, run_id: int, line_id: int) -> Optional[PayrollRunLine]:
        raise NotImplementedError

    def employee_lines(self, employee_id: int, start: date, end: date) -> Sequence[PayrollRunLine]:
        raise NotImplementedError

    def analytics_lines(
        self,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        run_id: Optional[int] = None,
        employee_id: Optional[int] = None,
    ) -> Sequence[PayrollRunLine]:
        """Run lines whose run period lies inside ``start``..``end``."""
        raise NotImplementedError

    def add(self, record):
        raise NotImplementedError
