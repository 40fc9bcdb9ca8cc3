# asset_portal/crosscutting/exceptions.py
"""
===============================================================================
MÓDULO: Excepciones tipadas del core de cache/actividad
===============================================================================

Objetivo
--------
Tener excepciones internas coherentes, con:
- error_code estable (los handlers lo mapean a status HTTP)
- error_id para correlación con logs
- message "humana" (sin filtrar secretos)

Taxonomía
---------
- ValidationError:      parámetros inválidos, se rechaza antes de cualquier I/O.
- TransientInfraError:  timeouts, throttling, 5xx. Se reintenta con backoff.
- TerminalInfraError:   permisos/credenciales/requests inválidos. No se reintenta.
- MalformedEventError:  un raw record del audit log que no se puede parsear.
                        Se loguea y se descarta; el batch continúa.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  PortalError + subclases

Responsabilidades:
  - Estandarizar errores internos
  - Generar error_id para rastreo

Colaboradores:
  - infrastructure/storage/errors.py, infrastructure/audit/errors.py (subclases)
  - infrastructure/services/retry.py (clasificación transient/terminal)
  - application/activity_aggregator.py (convierte fallos de refresh en resultado)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Estructura mínima para responder errores de forma consistente."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class PortalError(Exception):
    """
    Base para errores internos del core.

    Provee error_code + error_id + message.
    """

    error_code: str = "PORTAL_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


class ValidationError(PortalError):
    """Request mal formado (asset types desconocidos, days inválido, ...)."""

    error_code: str = "VALIDATION_ERROR"


class InfraError(PortalError):
    """Base de fallas de colaboradores externos (store, audit log, listing)."""

    error_code: str = "INFRA_ERROR"


class TransientInfraError(InfraError):
    """Falla transitoria: timeouts, throttling, 5xx, conexiones reseteadas."""

    error_code: str = "TRANSIENT_INFRA_ERROR"


class TerminalInfraError(InfraError):
    """Falla permanente: permisos, credenciales, validación del proveedor."""

    error_code: str = "TERMINAL_INFRA_ERROR"


class MalformedEventError(PortalError):
    """Un raw record del audit log no se pudo interpretar."""

    error_code: str = "MALFORMED_EVENT"
