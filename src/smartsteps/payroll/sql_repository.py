from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, or_

from ..database.extensions import db
from .model import PayrollEmployee, PayrollImport, PayrollImportRow, PayrollRun, PayrollRunLine
from .repository import PayrollRepository


class SQLPayrollRepository(PayrollRepository):
    def get_employee(self, employee_id: int) -> Optional[PayrollEmployee]:
        return PayrollEmployee.live().filter(PayrollEmployee.id == employee_id).first()

    def list_employees(self, *, active_only: bool = False) -> Sequence[PayrollEmployee]:
        q = PayrollEmployee.live()
        if active_only:
            q = q.filter(PayrollEmployee.active.is_(True))
        return q.order_by(PayrollEmployee.display_name.asc()).all()

    def list_employees_by_ids(self, ids: Iterable[int]) -> Sequence[PayrollEmployee]:
        ids = list(ids)
        if not ids:
            return []
        return PayrollEmployee.live().filter(PayrollEmployee.id.in_(ids)).all()

    def match_employee(self, code_or_name: str) -> Optional[PayrollEmployee]:
        key = code_or_name.strip().lower()
        return (
            PayrollEmployee.live()
            .filter(
                or_(
                    func.lower(PayrollEmployee.scanner_code) == key,
                    func.lower(PayrollEmployee.display_name) == key,
                )
            )
            .order_by(PayrollEmployee.id.asc())
            .first()
        )

    def get_import(self, import_id: int) -> Optional[PayrollImport]:
        return db.session.get(PayrollImport, import_id)

    def find_recent_import(self, file_name: str, since: datetime) -> Optional[PayrollImport]:
        return (
            PayrollImport.query.filter(PayrollImport.file_name == file_name, PayrollImport.created_at >= since)
            .order_by(PayrollImport.created_at.desc())
            .first()
        )

    def list_imports(self) -> Sequence[PayrollImport]:
        return PayrollImport.query.order_by(PayrollImport.created_at.desc()).all()

    def get_import_row(self, row_id: int) -> Optional[PayrollImportRow]:
        return db.session.get(PayrollImportRow, row_id)

    def import_rows(
        self,
        import_id: int,
        *,
        employee_ids: Optional[Iterable[int]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Sequence[PayrollImportRow]:
        q = PayrollImportRow.query.filter(PayrollImportRow.import_id == import_id)
        if employee_ids is not None:
            q = q.filter(PayrollImportRow.employee_id.in_(list(employee_ids)))
        if start:
            q = q.filter(PayrollImportRow.work_date >= start)
        if end:
            q = q.filter(PayrollImportRow.work_date <= end)
        return q.order_by(PayrollImportRow.work_date.asc(), PayrollImportRow.in_time.asc()).all()

    def employee_rows(self, employee_id: int, start: date, end: date) -> Sequence[PayrollImportRow]:
        return (
            PayrollImportRow.query.filter(
                PayrollImportRow.employee_id == employee_id,
                PayrollImportRow.work_date >= start,
                PayrollImportRow.work_date <= end,
            )
            .order_by(PayrollImportRow.work_date.asc(), PayrollImportRow.in_time.asc())
            .all()
        )

    def delete_import(self, record: PayrollImport) -> None:
        db.session.delete(record)
        db.session.flush()

    def get_run(self, run_id: int) -> Optional[PayrollRun]:
        return db.session.get(PayrollRun, run_id)

    def list_runs(self, *, status: Optional[str] = None) -> Sequence[PayrollRun]:
        q = PayrollRun.query
        if status:
            q = q.filter(PayrollRun.status == status)
        return q.order_by(PayrollRun.created_at.desc()).all()

    def count_runs_for_import(self, import_id: int) -> int:
        return PayrollRun.query.filter(PayrollRun.import_id == import_id).count()

    def get_line(self, run_id: int, line_id: int) -> Optional[PayrollRunLine]:
        return PayrollRunLine.query.filter(PayrollRunLine.run_id == run_id, PayrollRunLine.id == line_id).first()

    def employee_lines(self, employee_id: int, start: date, end: date) -> Sequence[PayrollRunLine]:
        return (
            PayrollRunLine.query.join(PayrollRun)
            .filter(
                PayrollRunLine.employee_id == employee_id,
                PayrollRun.period_start <= end,
                PayrollRun.period_end >= start,
            )
            .order_by(PayrollRun.period_start.asc())
            .all()
        )

    def analytics_lines(
        self,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        run_id: Optional[int] = None,
        employee_id: Optional[int] = None,
    ) -> Sequence[PayrollRunLine]:
        q = PayrollRunLine.query.join(PayrollRun)
        if start:
            q = q.filter(PayrollRun.period_start >= start)
        if end:
            q = q.filter(PayrollRun.period_end <= end)
        if run_id:
            q = q.filter(PayrollRun.id == run_id)
        if employee_id:
            q = q.filter(PayrollRunLine.employee_id == employee_id)
        return q.order_by(PayrollRun.period_start.asc(), PayrollRunLine.id.asc()).all()

    def add(self, record):
        db.session.add(record)
        db.session.flush()
        return record
