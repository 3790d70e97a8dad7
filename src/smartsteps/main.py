from __future__ import annotations

import importlib
import logging
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .audit.controller import register as register_audit
from .cli import register_cli
from .common.logging_setup import configure_logging
from .common.web import register_error_handlers
from .community.controller import register as register_community
from .container import build_container
from .database.bootstrap import ensure_admin_user, init_db, seed_permissions
from .database.extensions import db, enable_sqlite_savepoints
from .directory.controller import register as register_directory
from .email_queue.controller import register as register_email_queue
from .forms.controller import register as register_forms
from .invoices.controller import register as register_invoices
from .payroll.controller import register as register_payroll
from .reports.controller import register as register_reports
from .timesheets.controller import register as register_timesheets
from .users.controller import register as register_users

logger = logging.getLogger(__name__)

CONTAINER_KEY = "smartsteps.container"


def create_app(settings_module: Optional[str] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = settings_module or get_settings_module()
    settings = importlib.import_module(settings_module).SETTINGS
    app.config.from_object(settings)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    with app.app_context():
        enable_sqlite_savepoints(db.engine)
    register_error_handlers(app)

    container = build_container(settings)
    app.extensions[CONTAINER_KEY] = container

    register_users(app, container)
    register_audit(app, container)
    register_directory(app, container)
    register_timesheets(app, container)
    register_invoices(app, container)
    register_community(app, container)
    register_payroll(app, container)
    register_forms(app, container)
    register_email_queue(app, container)
    register_reports(app, container)
    register_cli(app, container)

    if app.config.get("AUTO_INIT_DB"):
        with app.app_context():
            tables = init_db()
            seed_permissions()
            logger.debug("Schema ready (%d tables) using %s", len(tables), settings_module)
    if app.config.get("AUTO_SEED_DB"):
        with app.app_context():
            ensure_admin_user(app.config.get("ADMIN_EMAIL"), app.config.get("ADMIN_PASSWORD"))

    return app
