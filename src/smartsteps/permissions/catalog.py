"""Names of every permission the application checks.

Seeded into the ``permissions`` table so custom roles can grant them.
"""

ACTIONS = ("view", "create", "update", "delete", "approve", "export")

_CRUD_RESOURCES = (
    "timesheets",
    "bcbaTimesheets",
    "invoices",
    "clients",
    "providers",
    "insurance",
    "bcbas",
    "users",
    "roles",
    "payroll",
    "community.clients",
    "community.classes",
    "community.invoices",
    "forms",
)

DASHBOARD_SECTIONS = (
    "providers",
    "clients",
    "timesheets",
    "invoices",
    "reports",
    "analytics",
    "users",
    "bcbas",
    "insurance",
    "payroll",
    "community",
    "emailQueue",
)

_EXTRA = (
    "timesheets.submit",
    "timesheets.viewAll",
    "timesheets.approve",
    "timesheets.reject",
    "bcbaTimesheets.viewAll",
    "bcbaTimesheets.approve",
    "bcbaTimesheets.reject",
    "invoices.approve",
    "reports.view",
    "reports.export",
    "emailQueue.view",
    "emailQueue.sendBatch",
    "emailQueue.delete",
    "community.emailQueue.view",
    "community.emailQueue.sendBatch",
    "community.invoices.approve",
    "payroll.import_logs",
    "payroll.runs",
    "auditLogs.view",
)


def all_permission_names() -> list[str]:
    names: list[str] = []
    for resource in _CRUD_RESOURCES:
        for verb in ("view", "create", "update", "delete"):
            names.append(f"{resource}.{verb}")
    names.extend(_EXTRA)
    names.extend(f"dashboard.{section}" for section in DASHBOARD_SECTIONS)
    # keep catalog order, drop duplicates
    return list(dict.fromkeys(names))


ROUTE_SECTIONS = {
    "/providers": "providers",
    "/clients": "clients",
    "/timesheets": "timesheets",
    "/invoices": "invoices",
    "/reports": "reports",
    "/analytics": "analytics",
    "/users": "users",
    "/bcbas": "bcbas",
    "/insurance": "insurance",
    "/payroll": "payroll",
    "/community": "community",
    "/email-queue": "emailQueue",
}

# Granted to plain USER accounts.
BASIC_USER_PERMISSIONS = (
    "timesheets.view",
    "timesheets.create",
    "timesheets.update",
    "timesheets.submit",
    "invoices.view",
)

# Never granted to ADMIN (SUPER_ADMIN only).
ADMIN_EXCLUDED = ("users.delete", "roles.delete")
