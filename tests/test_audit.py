from __future__ import annotations

from decimal import Decimal

from smartsteps.audit.model import AuditLog
from smartsteps.core.enums import AuditAction
from smartsteps.database.extensions import db
from smartsteps.database.session import transaction
from smartsteps.directory.model import Insurance
from smartsteps.main import CONTAINER_KEY


def test_failed_audit_write_keeps_surrounding_work(app):
    audit = app.extensions[CONTAINER_KEY].audit

    with transaction():
        db.session.add(Insurance(name="Aetna", rate_per_unit=Decimal("12.50")))
        db.session.flush()
        # not JSON serialisable, so the audit insert fails
        audit.record(AuditAction.CREATE, "Insurance", 1, metadata={"bad": object()})

    assert Insurance.query.count() == 1
    assert AuditLog.query.count() == 0


def test_audit_rows_are_written_with_the_operation(app):
    audit = app.extensions[CONTAINER_KEY].audit

    with transaction():
        db.session.add(Insurance(name="Cigna", rate_per_unit=Decimal("10")))
        db.session.flush()
        audit.record(AuditAction.CREATE, "Insurance", 1, user_id=3, new_values={"name": "Cigna"})

    [row] = AuditLog.query.all()
    assert row.action == "CREATE"
    assert row.entity_id == "1"
    assert row.new_values == {"name": "Cigna"}
