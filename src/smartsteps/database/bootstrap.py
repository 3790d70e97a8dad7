from __future__ import annotations

import logging
from typing import Optional

import mysql.connector
from sqlalchemy.engine import make_url
from werkzeug.security import generate_password_hash

from ..core.enums import UserRole
from ..permissions.catalog import all_permission_names
from .extensions import db

logger = logging.getLogger(__name__)


def _import_models() -> None:
    # every model module must be imported before create_all
    from ..audit import model as _audit  # noqa: F401
    from ..community import model as _community  # noqa: F401
    from ..directory import model as _directory  # noqa: F401
    from ..email_queue import model as _email_queue  # noqa: F401
    from ..forms import model as _forms  # noqa: F401
    from ..invoices import model as _invoices  # noqa: F401
    from ..payroll import model as _payroll  # noqa: F401
    from ..timesheets import model as _timesheets  # noqa: F401
    from ..users import model as _users  # noqa: F401


def ensure_database_exists(database_uri: str) -> None:
    """CREATE DATABASE IF NOT EXISTS for MySQL URLs; other backends are left alone."""
    url = make_url(database_uri)
    if not url.drivername.startswith("mysql") or not url.database:
        return
    conn = mysql.connector.connect(
        host=url.host or "localhost",
        port=int(url.port or 3306),
        user=url.username or "root",
        password=url.password or "",
        use_pure=True,
    )
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;"
        )
        conn.commit()
    finally:
        conn.close()


def init_db() -> list[str]:
    """Create every table that does not exist yet and return the table names."""
    _import_models()
    db.create_all()
    return sorted(db.metadata.tables)


def seed_permissions() -> int:
    """Insert missing catalog permissions; returns how many were added."""
    from ..users.model import Permission

    existing = {p.name for p in Permission.query.all()}
    added = 0
    for name in all_permission_names():
        if name not in existing:
            db.session.add(Permission(name=name))
            added += 1
    db.session.commit()
    if added:
        logger.info("Seeded %d permission(s)", added)
    return added


def ensure_admin_user(email: Optional[str], password: Optional[str], *, full_name: str = "Administrator") -> bool:
    """Create a SUPER_ADMIN account if ``email`` is unused. Returns True when created."""
    from ..users.model import User

    email = (email or "").strip().lower()
    if not email or not password:
        return False
    if User.query.filter(User.email == email).first():
        return False
    db.session.add(
        User(
            email=email,
            full_name=full_name,
            password_hash=generate_password_hash(password),
            role=UserRole.SUPER_ADMIN.value,
            active=True,
        )
    )
    db.session.commit()
    logger.info("Created bootstrap admin %s", email)
    return True
