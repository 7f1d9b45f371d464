"""Enums for KMT - these define the valid values for roles, statuses and audit actions."""
from enum import Enum


class Role(str, Enum):
    """Roles supplied by the identity provider. No other roles are accepted."""
    STAFF = "staff"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"


class RequestStatus(str, Enum):
    """The four states a material request can be in."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DECLINED = "declined"


class RequestCategory(str, Enum):
    """PPE requests write to the PPE register when completed."""
    MATERIAL = "material"
    PPE = "ppe"


class WorkflowAction(str, Enum):
    """Actions a caller can ask the workflow engine to perform."""
    ACCEPT = "accept"
    DECLINE = "decline"
    COMPLETE = "complete"
    REASSIGN = "reassign"


class AuditAction(str, Enum):
    """Actions recorded in the audit log."""
    ACCEPTED = "accepted"
    DECLINED = "declined"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    DELETED = "deleted"
    RECOVERED = "recovered"
    PURGED = "purged"


class ExportFormat(str, Enum):
    """Formats the external renderer produces. No CSV."""
    XLSX = "xlsx"
    PDF = "pdf"
