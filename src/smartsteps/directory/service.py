from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from ..audit.service import AuditLogger
from ..common.tabular import cell, normalize_column, read_table
from ..common.validators import optional_str, parse_bool, parse_decimal, parse_int, require_non_empty
from ..core.constants import DEFAULT_UNIT_MINUTES
from ..core.enums import AuditAction
from ..core.exceptions import NotFoundError, ValidationError
from ..permissions.model import SessionUser
from .repository import DirectoryRepository

logger = logging.getLogger(__name__)

Transaction = Callable[[], AbstractContextManager]
ZERO = Decimal("0")


def _optional_rate(value: Any, field_name: str) -> Optional[Decimal]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_decimal(value, field_name, minimum=ZERO)


def _contact_fields(payload: Mapping[str, Any], partial: bool) -> dict:
    out: dict[str, Any] = {}
    if not partial or "name" in payload:
        out["name"] = require_non_empty(payload.get("name"), "Name")
    for key in ("email", "phone"):
        if key in payload:
            out[key] = optional_str(payload.get(key))
    if "active" in payload:
        out["active"] = parse_bool(payload.get("active"))
    return out


def parse_insurance(payload: Mapping[str, Any], partial: bool) -> dict:
    out: dict[str, Any] = {}
    if not partial or "name" in payload:
        out["name"] = require_non_empty(payload.get("name"), "Name")
    if not partial or "rate_per_unit" in payload:
        out["rate_per_unit"] = _optional_rate(payload.get("rate_per_unit"), "Rate per unit") or ZERO
    for key, label in (("regular_rate_per_unit", "Regular rate per unit"), ("bcba_rate_per_unit", "BCBA rate per unit")):
        if key in payload:
            out[key] = _optional_rate(payload.get(key), label)
    for key in ("regular_unit_minutes", "bcba_unit_minutes"):
        if key in payload:
            raw = payload.get(key)
            out[key] = DEFAULT_UNIT_MINUTES if raw in (None, "") else parse_int(raw, key, minimum=1)
    if "active" in payload:
        out["active"] = parse_bool(payload.get("active"))
    return out


def parse_client(payload: Mapping[str, Any], partial: bool) -> dict:
    out = _contact_fields(payload, partial)
    for key in ("address", "id_number", "medicaid_id"):
        if key in payload:
            out[key] = optional_str(payload.get(key))
    if "insurance_id" in payload:
        raw = payload.get("insurance_id")
        out["insurance_id"] = None if raw in (None, "") else parse_int(raw, "insurance_id")
    return out


def parse_provider(payload: Mapping[str, Any], partial: bool) -> dict:
    out = _contact_fields(payload, partial)
    for key in ("npi", "signature"):
        if key in payload:
            out[key] = optional_str(payload.get(key))
    return out


def parse_bcba(payload: Mapping[str, Any], partial: bool) -> dict:
    out = _contact_fields(payload, partial)
    if "signature" in payload:
        out["signature"] = optional_str(payload.get("signature"))
    return out


class DirectoryService:
    """CRUD for one directory entity. ``label`` is used in messages and audit rows."""

    def __init__(
        self,
        label: str,
        model,
        repo: DirectoryRepository,
        parse: Callable[[Mapping[str, Any], bool], dict],
        audit: AuditLogger,
        transaction: Transaction,
        *,
        insurances: Optional[DirectoryRepository] = None,
    ):
        self.label = label
        self._model = model
        self._repo = repo
        self._parse = parse
        self._audit = audit
        self._tx = transaction
        self._insurances = insurances

    def list(self, *, active_only: bool = False, search: Optional[str] = None) -> list[dict]:
        return [r.to_dict() for r in self._repo.list_all(active_only=active_only, search=search)]

    def get(self, record_id: int):
        record = self._repo.get_by_id(record_id)
        if not record:
            raise NotFoundError(f"{self.label} not found")
        return record

    def _check_refs(self, fields: dict) -> None:
        insurance_id = fields.get("insurance_id")
        if insurance_id is not None and self._insurances is not None:
            if not self._insurances.get_by_id(insurance_id):
                raise ValidationError("Insurance not found")

    def create(self, actor: SessionUser, payload: Mapping[str, Any]):
        fields = self._parse(payload, False)
        self._check_refs(fields)
        fields.setdefault("active", True)
        with self._tx():
            record = self._repo.add(self._model(**fields))
            self._audit.record(AuditAction.CREATE, self.label, record.id, user_id=actor.user_id, new_values={"name": record.name})
        return record

    def update(self, actor: SessionUser, record_id: int, payload: Mapping[str, Any]):
        record = self.get(record_id)
        fields = self._parse(payload, True)
        self._check_refs(fields)
        old = {k: _plain(getattr(record, k)) for k in fields}
        with self._tx():
            for key, value in fields.items():
                setattr(record, key, value)
            self._audit.record(
                AuditAction.UPDATE,
                self.label,
                record.id,
                user_id=actor.user_id,
                old_values=old,
                new_values={k: _plain(v) for k, v in fields.items()},
            )
        return record

    def delete(self, actor: SessionUser, record_id: int) -> None:
        record = self.get(record_id)
        with self._tx():
            record.soft_delete()
            self._audit.record(AuditAction.DELETE, self.label, record.id, user_id=actor.user_id)

    def count_active(self) -> int:
        return self._repo.count_active()


def _plain(value: Any) -> Any:
    return float(value) if isinstance(value, Decimal) else value


class DirectoryImporter:
    """Bulk-create clients or providers from an uploaded CSV/Excel sheet."""

    NAME_KEYS = ("name", "clientname", "providername", "fullname")

    def __init__(self, service: DirectoryService, *, insurances: Optional[DirectoryRepository] = None):
        self._service = service
        self._insurances = insurances

    def import_file(self, actor: SessionUser, filename: str, content: bytes) -> dict:
        df = read_table(filename, content)
        if df.empty:
            raise ValidationError("File has no data rows")
        columns = {normalize_column(c): c for c in df.columns}
        name_col = next((columns[k] for k in self.NAME_KEYS if k in columns), None)
        if name_col is None:
            raise ValidationError("A 'name' column is required")

        created = 0
        skipped = 0
        errors: list[str] = []
        for idx, row in enumerate(df.to_dict(orient="records")):
            row_num = idx + 2  # header is row 1
            values = {normalize_column(k): cell(v) for k, v in row.items()}
            if not any(values.values()):
                skipped += 1
                continue
            try:
                self._service.create(actor, self._payload(values, row.get(name_col)))
                created += 1
            except ValidationError as exc:
                errors.append(f"Row {row_num}: {exc.message}")

        logger.info("Imported %d %s row(s), %d skipped, %d error(s)", created, self._service.label, skipped, len(errors))
        return {"created": created, "skipped": skipped, "errors": errors}

    def _payload(self, values: dict, name: Any) -> dict:
        payload: dict[str, Any] = {"name": cell(name)}
        for key in ("email", "phone", "address", "npi", "medicaidid", "idnumber"):
            if values.get(key):
                target = {"medicaidid": "medicaid_id", "idnumber": "id_number"}.get(key, key)
                payload[target] = values[key]
        if values.get("active") is not None:
            payload["active"] = parse_bool(values["active"])

        if self._insurances is not None:
            insurance_name = values.get("insurance") or values.get("insurancename")
            if not insurance_name:
                raise ValidationError("Insurance is required")
            insurance = self._insurances.get_by_name(insurance_name)
            if not insurance:
                raise ValidationError(f'Insurance "{insurance_name}" not found')
            payload["insurance_id"] = insurance.id
        return payload
