from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence


class DirectoryRepository(Protocol):
    """Soft-delete aware access to one directory table (clients, providers, ...)."""

    def get_by_id(self, record_id: int) -> Optional[Any]:
        raise NotImplementedError

    def get_by_name(self, name: str) -> Optional[Any]:
        raise NotImplementedError

    def list_all(self, *, active_only: bool = False, search: Optional[str] = None) -> Sequence[Any]:
        raise NotImplementedError

    def first_active(self) -> Optional[Any]:
        raise NotImplementedError

    def add(self, record: Any) -> Any:
        raise NotImplementedError

    def count_active(self) -> int:
        raise NotImplementedError
