from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from .extensions import db


@contextmanager
def transaction() -> Iterator[None]:
    """Commit everything flushed inside the block, roll back on any error."""
    try:
        yield
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
