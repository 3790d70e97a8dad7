from __future__ import annotations

import click
from flask import Flask, current_app
from flask.cli import AppGroup

from .container import Container
from .core.enums import EmailContext
from .database.bootstrap import ensure_admin_user, ensure_database_exists, init_db, seed_permissions


def register_cli(app: Flask, container: Container) -> None:
    @app.cli.command("init-db")
    @click.option("--create-database", is_flag=True, help="Run CREATE DATABASE IF NOT EXISTS first (MySQL).")
    def init_db_command(create_database: bool):
        """Create all tables and seed the permission catalog."""
        if create_database:
            ensure_database_exists(current_app.config["SQLALCHEMY_DATABASE_URI"])
        tables = init_db()
        added = seed_permissions()
        click.echo(f"Schema ready: {len(tables)} tables, {added} new permission(s)")

    @app.cli.command("seed")
    @click.option("--email", default=None, help="Admin email (defaults to ADMIN_EMAIL).")
    @click.option("--password", default=None, help="Admin password (defaults to ADMIN_PASSWORD).")
    def seed_command(email, password):
        """Seed permissions and the bootstrap SUPER_ADMIN account."""
        seed_permissions()
        created = ensure_admin_user(
            email or current_app.config.get("ADMIN_EMAIL"),
            password or current_app.config.get("ADMIN_PASSWORD"),
        )
        click.echo("Admin user created" if created else "Admin user already present or not configured")

    @app.cli.command("generate-invoices")
    def generate_invoices_command():
        """Invoice every eligible timesheet (scheduled job)."""
        result = container.invoice_service.generate(None, None)
        click.echo(f"created={len(result['created'])} skipped={len(result['skipped'])} errors={len(result['errors'])}")
        for line in result["errors"]:
            click.echo(f"  error: {line}")

    queue = AppGroup("email-queue", help="Email queue maintenance.")

    @queue.command("send")
    @click.option(
        "--context",
        type=click.Choice([c.value for c in EmailContext], case_sensitive=False),
        default=EmailContext.MAIN.value,
        show_default=True,
    )
    def send_command(context: str):
        """Send every QUEUED item of one context as a single batch email."""
        result = container.email_queue_service.send_batch(None, context)
        click.echo(
            f"batch={result['batch_id'] or '-'} sent={result['sent']} failed={result['failed']} skipped={result['skipped']}"
        )

    app.cli.add_command(queue)
