from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Callable, Mapping, Optional

from ..audit.service import AuditLogger
from ..common.validators import parse_int
from ..core.enums import AuditAction, FormType
from ..core.exceptions import NotFoundError, ValidationError
from ..directory.repository import DirectoryRepository
from ..permissions.model import SessionUser
from .model import FormDocument
from .repository import FormKey, FormRepository

Transaction = Callable[[], AbstractContextManager]


def parse_form_key(values: Mapping[str, Any]) -> FormKey:
    raw_type = str(values.get("type") or values.get("form_type") or "").strip().upper()
    try:
        form_type = FormType(raw_type)
    except ValueError:
        raise ValidationError(f"Unknown form type: {raw_type or '(empty)'}")
    if values.get("client_id") in (None, ""):
        raise ValidationError("client_id is required")
    month = parse_int(values.get("month"), "month")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    year = parse_int(values.get("year"), "year", minimum=2000)

    provider_id = None
    if form_type is FormType.VISIT_ATTESTATION:
        if values.get("provider_id") in (None, ""):
            raise ValidationError("provider_id is required for visit attestations")
        provider_id = parse_int(values.get("provider_id"), "provider_id")
    return FormKey(
        form_type=form_type.value,
        client_id=parse_int(values.get("client_id"), "client_id"),
        month=month,
        year=year,
        provider_id=provider_id,
    )


class FormService:
    def __init__(
        self,
        forms: FormRepository,
        *,
        clients: DirectoryRepository,
        providers: DirectoryRepository,
        audit: AuditLogger,
        transaction: Transaction,
    ):
        self._forms = forms
        self._clients = clients
        self._providers = providers
        self._audit = audit
        self._tx = transaction

    def find(self, values: Mapping[str, Any]) -> Optional[FormDocument]:
        return self._forms.get_by_key(parse_form_key(values))

    def list(self, *, form_type: Optional[str] = None, client_id: Optional[int] = None, month: Optional[int] = None, year: Optional[int] = None) -> list[dict]:
        return [f.to_dict() for f in self._forms.list_forms(form_type=form_type, client_id=client_id, month=month, year=year)]

    def upsert(self, actor: SessionUser, payload: Mapping[str, Any]) -> FormDocument:
        key = parse_form_key(payload)
        body = payload.get("payload") or {}
        if not isinstance(body, dict):
            raise ValidationError("payload must be an object")
        if not self._clients.get_by_id(key.client_id):
            raise ValidationError("Client not found")
        if key.provider_id is not None and not self._providers.get_by_id(key.provider_id):
            raise ValidationError("Provider not found")

        with self._tx():
            form = self._forms.get_by_key(key)
            action = AuditAction.UPDATE
            if form is None:
                action = AuditAction.CREATE
                form = self._forms.add(
                    FormDocument(
                        form_type=key.form_type,
                        client_id=key.client_id,
                        provider_id=key.provider_id,
                        month=key.month,
                        year=key.year,
                        payload=body,
                        updated_by_id=actor.user_id,
                    )
                )
            else:
                form.payload = body
                form.updated_by_id = actor.user_id
            self._audit.record(action, "FormDocument", form.id, user_id=actor.user_id, metadata={"type": key.form_type})
        return form

    def delete(self, actor: SessionUser, form_id: int) -> None:
        form = self._forms.get_by_id(form_id)
        if not form:
            raise NotFoundError("Form not found")
        with self._tx():
            form.soft_delete()
            self._audit.record(AuditAction.DELETE, "FormDocument", form.id, user_id=actor.user_id)
