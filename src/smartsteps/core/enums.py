from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    """Built-in account roles; CUSTOM defers to a stored role."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    CUSTOM = "CUSTOM"
    USER = "USER"


class TimesheetStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EMAILED = "EMAILED"
    ARCHIVED = "ARCHIVED"


class EntryKind(str, Enum):
    """DR = direct service, SV = supervision."""

    DR = "DR"
    SV = "SV"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    READY = "READY"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    VOID = "VOID"


class CommunityInvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    QUEUED = "QUEUED"
    EMAILED = "EMAILED"
    FAILED = "FAILED"


class EmailQueueStatus(str, Enum):
    QUEUED = "QUEUED"
    SENDING = "SENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class EmailEntityType(str, Enum):
    REGULAR = "REGULAR"
    BCBA = "BCBA"
    COMMUNITY_INVOICE = "COMMUNITY_INVOICE"


class EmailContext(str, Enum):
    MAIN = "MAIN"
    COMMUNITY = "COMMUNITY"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SUBMIT = "SUBMIT"
    GENERATE = "GENERATE"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    QUEUE = "QUEUE"
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"
    LOGIN = "LOGIN"
    IMPORT = "IMPORT"


class FormType(str, Enum):
    PARENT_ABC_DATA = "PARENT_ABC_DATA"
    PARENT_TRAINING_SIGN_IN = "PARENT_TRAINING_SIGN_IN"
    VISIT_ATTESTATION = "VISIT_ATTESTATION"


class PayrollRunStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class PunchType(str, Enum):
    IN = "IN"
    OUT = "OUT"
