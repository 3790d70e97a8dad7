from __future__ import annotations

from dataclasses import dataclass

from .audit.service import AuditLogger
from .audit.sql_repository import SQLAuditRepository
from .community.service import CommunityService
from .community.sql_repository import SQLCommunityRepository
from .database.session import transaction
from .directory.model import Bcba, Client, Insurance, Provider
from .directory.service import (
    DirectoryImporter,
    DirectoryService,
    parse_bcba,
    parse_client,
    parse_insurance,
    parse_provider,
)
from .directory.sql_repository import SQLDirectoryRepository
from .email_queue.mailer import Mailer, SESMailer
from .email_queue.service import EmailQueueService
from .email_queue.sql_repository import SQLEmailQueueRepository
from .forms.service import FormService
from .forms.sql_repository import SQLFormRepository
from .invoices.service import InvoiceService
from .invoices.sql_repository import SQLInvoiceRepository
from .payroll.service import PayrollEmployeeService, PayrollImportService, PayrollRunService
from .payroll.sql_repository import SQLPayrollRepository
from .reports.search import SearchService
from .reports.service import ReportService
from .timesheets.service import TimesheetService
from .timesheets.sql_repository import SQLTimesheetRepository
from .users.service import AuthService, LoginPolicy, PasswordResetService, RoleService, UserService
from .users.sql_repository import SQLRoleRepository, SQLUserRepository


@dataclass(frozen=True)
class Container:
    mailer: Mailer
    audit: AuditLogger

    auth_service: AuthService
    password_reset_service: PasswordResetService
    user_service: UserService
    role_service: RoleService

    client_service: DirectoryService
    provider_service: DirectoryService
    insurance_service: DirectoryService
    bcba_service: DirectoryService
    client_importer: DirectoryImporter
    provider_importer: DirectoryImporter

    timesheet_service: TimesheetService
    invoice_service: InvoiceService
    community_service: CommunityService
    email_queue_service: EmailQueueService
    form_service: FormService
    report_service: ReportService
    search_service: SearchService

    payroll_employee_service: PayrollEmployeeService
    payroll_import_service: PayrollImportService
    payroll_run_service: PayrollRunService


def build_container(settings, *, mailer: Mailer | None = None) -> Container:
    """Wire repositories and services once per app. ``mailer`` overrides SES (tests)."""
    app_url = str(getattr(settings, "APP_URL", ""))
    timezone = str(getattr(settings, "TIMEZONE", "America/New_York"))
    mailer = mailer or SESMailer(
        sender=settings.EMAIL_FROM,
        region=settings.AWS_REGION,
        enabled=bool(settings.EMAIL_ENABLED),
    )

    audit = AuditLogger(SQLAuditRepository())
    users_repo = SQLUserRepository()
    roles_repo = SQLRoleRepository()
    clients_repo = SQLDirectoryRepository(Client)
    providers_repo = SQLDirectoryRepository(Provider)
    insurances_repo = SQLDirectoryRepository(Insurance)
    bcbas_repo = SQLDirectoryRepository(Bcba)
    timesheets_repo = SQLTimesheetRepository()
    invoices_repo = SQLInvoiceRepository()
    queue_repo = SQLEmailQueueRepository()
    community_repo = SQLCommunityRepository()
    payroll_repo = SQLPayrollRepository()

    client_service = DirectoryService("Client", Client, clients_repo, parse_client, audit, transaction, insurances=insurances_repo)
    provider_service = DirectoryService("Provider", Provider, providers_repo, parse_provider, audit, transaction)
    timesheet_service = TimesheetService(
        timesheets_repo,
        clients=clients_repo,
        providers=providers_repo,
        bcbas=bcbas_repo,
        insurances=insurances_repo,
        queue=queue_repo,
        users=users_repo,
        mailer=mailer,
        audit=audit,
        transaction=transaction,
        app_url=app_url,
        default_timezone=timezone,
    )

    return Container(
        mailer=mailer,
        audit=audit,
        auth_service=AuthService(
            users_repo,
            roles_repo,
            audit,
            transaction,
            policy=LoginPolicy(
                max_attempts=int(settings.LOGIN_MAX_ATTEMPTS),
                lock_minutes=int(settings.LOGIN_LOCK_MINUTES),
            ),
        ),
        password_reset_service=PasswordResetService(
            users_repo,
            mailer,
            audit,
            transaction,
            app_url=app_url,
            token_minutes=int(settings.PASSWORD_RESET_MINUTES),
        ),
        user_service=UserService(users_repo, roles_repo, audit, transaction, mailer=mailer, app_url=app_url),
        role_service=RoleService(roles_repo, users_repo, audit, transaction),
        client_service=client_service,
        provider_service=provider_service,
        insurance_service=DirectoryService("Insurance", Insurance, insurances_repo, parse_insurance, audit, transaction),
        bcba_service=DirectoryService("BCBA", Bcba, bcbas_repo, parse_bcba, audit, transaction),
        client_importer=DirectoryImporter(client_service, insurances=insurances_repo),
        provider_importer=DirectoryImporter(provider_service),
        timesheet_service=timesheet_service,
        invoice_service=InvoiceService(
            invoices_repo,
            timesheets_repo,
            audit,
            transaction,
            token_days=int(settings.INVOICE_TOKEN_DAYS),
        ),
        community_service=CommunityService(community_repo, queue_repo, audit, transaction),
        email_queue_service=EmailQueueService(
            queue_repo,
            timesheets=timesheets_repo,
            community=community_repo,
            mailer=mailer,
            audit=audit,
            transaction=transaction,
            recipients={
                "MAIN": list(settings.MAIN_EMAIL_RECIPIENTS),
                "COMMUNITY": list(settings.COMMUNITY_EMAIL_RECIPIENTS),
            },
            app_url=app_url,
        ),
        form_service=FormService(
            SQLFormRepository(),
            clients=clients_repo,
            providers=providers_repo,
            audit=audit,
            transaction=transaction,
        ),
        report_service=ReportService(
            timesheets_repo,
            invoices=invoices_repo,
            queue=queue_repo,
            clients=clients_repo,
            providers=providers_repo,
        ),
        search_service=SearchService(timesheet_service, timesheets_repo, invoices_repo),
        payroll_employee_service=PayrollEmployeeService(payroll_repo, audit, transaction),
        payroll_import_service=PayrollImportService(payroll_repo, audit, transaction, default_timezone=timezone),
        payroll_run_service=PayrollRunService(payroll_repo, audit, transaction),
    )
