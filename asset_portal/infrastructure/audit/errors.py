"""
===============================================================================
CRC CARD — infrastructure/audit/errors.py
===============================================================================

Componente:
  Errores tipados del audit log (CloudTrail)

Responsabilidades:
  - Evitar que botocore se filtre a la capa de aplicación.
  - Clasificar cada falla como transitoria (throttling, 5xx) o terminal.

Colaboradores:
  - infrastructure/audit/cloudtrail_reader.py
===============================================================================
"""

from ...crosscutting.exceptions import (
    InfraError,
    TerminalInfraError,
    TransientInfraError,
)


class AuditLogError(InfraError):
    """Base de errores del audit log."""

    error_code: str = "AUDIT_LOG_ERROR"


class AuditLogUnavailableError(AuditLogError, TransientInfraError):
    """Throttling, timeouts o caída del servicio de auditoría."""

    error_code: str = "AUDIT_LOG_UNAVAILABLE"


class AuditLogPermissionError(AuditLogError, TerminalInfraError):
    """Sin permisos para cloudtrail:LookupEvents o request inválido."""

    error_code: str = "AUDIT_LOG_PERMISSION_ERROR"


class AuditLogPageLimitError(AuditLogError, TerminalInfraError):
    """La consulta superó el tope de páginas con NextToken pendiente."""

    error_code: str = "AUDIT_LOG_PAGE_LIMIT"
