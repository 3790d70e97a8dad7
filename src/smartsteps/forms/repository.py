from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from .model import FormDocument


@dataclass(frozen=True)
class FormKey:
    form_type: str
    client_id: int
    month: int
    year: int
    provider_id: Optional[int] = None


class FormRepository(Protocol):
    def get_by_id(self, form_id: int) -> Optional[FormDocument]:
        raise NotImplementedError

    def get_by_key(self, key: FormKey) -> Optional[FormDocument]:
        raise NotImplementedError

    def list_forms(
        self,
        *,
        form_type: Optional[str] = None,
        client_id: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> Sequence[FormDocument]:
        raise NotImplementedError

    def add(self, form: FormDocument) -> FormDocument:
        raise NotImplementedError
