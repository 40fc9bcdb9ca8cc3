"""
===============================================================================
CRC CARD — infrastructure/storage/errors.py
===============================================================================

Componente:
  Errores tipados del durable store (S3/MinIO)

Responsabilidades:
  - Definir un lenguaje común de fallas del subsistema de almacenamiento.
  - Evitar que excepciones de boto3/botocore se filtren a capas superiores.
  - Clasificar cada falla como transitoria o terminal (retry policy).

Colaboradores:
  - infrastructure/storage/s3_durable_store.py (mapeo de ClientError -> StorageError)
  - crosscutting/exceptions.py (TransientInfraError / TerminalInfraError)
===============================================================================
"""

from ...crosscutting.exceptions import (
    InfraError,
    TerminalInfraError,
    TransientInfraError,
)


class StorageError(InfraError):
    """Base de errores del subsistema de Storage."""

    error_code: str = "STORAGE_ERROR"


class StorageConfigurationError(StorageError, TerminalInfraError):
    """Configuración inválida o incompleta del adaptador de storage."""

    error_code: str = "STORAGE_CONFIGURATION_ERROR"


class StorageNotFoundError(StorageError):
    """Objeto no encontrado (ej: NoSuchKey). El store lo traduce a None."""

    error_code: str = "STORAGE_NOT_FOUND"

    def __init__(self, key: str):
        super().__init__(f"Objeto no encontrado en storage. key={key}")
        self.key = key


class StoragePermissionError(StorageError, TerminalInfraError):
    """Credenciales inválidas o falta de permisos (ej: AccessDenied)."""

    error_code: str = "STORAGE_PERMISSION_ERROR"

    def __init__(
        self,
        message: str = "Permiso denegado en storage.",
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)


class StorageUnavailableError(StorageError, TransientInfraError):
    """Storage caído o temporalmente no disponible (timeouts, 503, SlowDown)."""

    error_code: str = "STORAGE_UNAVAILABLE"

    def __init__(
        self,
        message: str = "Storage no disponible.",
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)


class StorageRequestError(StorageError, TerminalInfraError):
    """Request rechazado por el proveedor con un código no reintentable."""

    error_code: str = "STORAGE_REQUEST_ERROR"
