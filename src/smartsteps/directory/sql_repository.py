from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import func

from ..database.extensions import db
from .repository import DirectoryRepository


class SQLDirectoryRepository(DirectoryRepository):
    def __init__(self, model):
        self._model = model

    def get_by_id(self, record_id: int) -> Optional[Any]:
        m = self._model
        return m.live().filter(m.id == record_id).first()

    def get_by_name(self, name: str) -> Optional[Any]:
        m = self._model
        return m.live().filter(func.lower(m.name) == name.strip().lower()).first()

    def list_all(self, *, active_only: bool = False, search: Optional[str] = None) -> Sequence[Any]:
        m = self._model
        q = m.live()
        if active_only:
            q = q.filter(m.active.is_(True))
        if search:
            q = q.filter(m.name.ilike(f"%{search.strip()}%"))
        return q.order_by(m.name.asc()).all()

    def first_active(self) -> Optional[Any]:
        m = self._model
        return m.live().filter(m.active.is_(True)).order_by(m.id.asc()).first()

    def add(self, record: Any) -> Any:
        db.session.add(record)
        db.session.flush()
        return record

    def count_active(self) -> int:
        m = self._model
        return m.live().filter(m.active.is_(True)).count()
