"""Adapters de infraestructura: audit log."""

from .cloudtrail_reader import CloudTrailAuditLogReader
from .errors import (
    AuditLogError,
    AuditLogPageLimitError,
    AuditLogPermissionError,
    AuditLogUnavailableError,
)

__all__ = [
    "CloudTrailAuditLogReader",
    "AuditLogError",
    "AuditLogPageLimitError",
    "AuditLogPermissionError",
    "AuditLogUnavailableError",
]
