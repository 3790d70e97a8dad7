from __future__ import annotations

from typing import Optional, Sequence

from ..database.extensions import db
from .model import FormDocument
from .repository import FormKey, FormRepository


class SQLFormRepository(FormRepository):
    def get_by_id(self, form_id: int) -> Optional[FormDocument]:
        return FormDocument.live().filter(FormDocument.id == form_id).first()

    def get_by_key(self, key: FormKey) -> Optional[FormDocument]:
        q = FormDocument.live().filter(
            FormDocument.form_type == key.form_type,
            FormDocument.client_id == key.client_id,
            FormDocument.month == key.month,
            FormDocument.year == key.year,
        )
        if key.provider_id is None:
            q = q.filter(FormDocument.provider_id.is_(None))
        else:
            q = q.filter(FormDocument.provider_id == key.provider_id)
        return q.first()

    def list_forms(
        self,
        *,
        form_type: Optional[str] = None,
        client_id: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> Sequence[FormDocument]:
        q = FormDocument.live()
        if form_type:
            q = q.filter(FormDocument.form_type == form_type)
        if client_id:
            q = q.filter(FormDocument.client_id == client_id)
        if month:
            q = q.filter(FormDocument.month == month)
        if year:
            q = q.filter(FormDocument.year == year)
        return q.order_by(FormDocument.year.desc(), FormDocument.month.desc(), FormDocument.id.desc()).all()

    def add(self, form: FormDocument) -> FormDocument:
        db.session.add(form)
        db.session.flush()
        return form
