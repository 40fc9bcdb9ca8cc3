"""
===============================================================================
CRC CARD — infrastructure/storage/s3_durable_store.py
===============================================================================

Clase:
  S3DurableStore (Adapter)

Responsabilidades:
  - Implementar DurableStorePort contra S3-compatible (AWS S3 / MinIO).
  - Encapsular boto3 (NO filtrar ClientError).
  - get(key) -> bytes | None  (NoSuchKey se traduce a None)
  - put(key, bytes)           (JSON blobs del cache)
  - delete(key)               (idempotente; compensación de commits fallidos)
  - list_keys(prefix)         (usado por el asset source de exports)
  - Reintentar fallas transitorias con la retry policy (tenacity).

Colaboradores:
  - domain.services.DurableStorePort (port)
  - infrastructure.storage.errors (errores tipados)
  - infrastructure.services.retry (backoff + jitter)
  - boto3/botocore (SDK, oculto por este adapter)

Decisiones de diseño:
  - Validación fail-fast de config.
  - Lazy import de boto3 para mejorar cold start.
  - El retry envuelve la llamada YA mapeada: la clasificación transient/terminal
    se hace sobre StorageError, no sobre detalles del SDK.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from ...crosscutting.logger import logger
from ..services.retry import create_retry_decorator
from .errors import (
    StorageConfigurationError,
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageRequestError,
    StorageUnavailableError,
)

JSON_CONTENT_TYPE = "application/json"

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_PERMISSION_CODES = {
    "AccessDenied",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "AllAccessDisabled",
}
_UNAVAILABLE_CODES = {
    "SlowDown",
    "RequestTimeout",
    "ServiceUnavailable",
    "InternalError",
    "503",
    "500",
}


@dataclass(frozen=True)
class S3Config:
    """
    Configuración del durable store S3-compatible.

    Nota:
      - endpoint_url permite MinIO u otros S3 compatibles.
      - access_key/secret_key vacíos => cadena de credenciales default de AWS.
    """

    bucket: str
    access_key: str = ""
    secret_key: str = ""
    region: Optional[str] = None
    endpoint_url: Optional[str] = None


class S3DurableStore:
    """
    Adapter S3-compatible para el cache durable.

    Implementa:
      - get
      - put
      - list_keys
    """

    def __init__(
        self,
        config: S3Config,
        *,
        client=None,
        retry_decorator: Callable | None = None,
    ) -> None:
        self._config = config
        self._bucket = (config.bucket or "").strip()

        if not self._bucket:
            raise StorageConfigurationError("S3 bucket es requerido.")
        if bool((config.access_key or "").strip()) != bool(
            (config.secret_key or "").strip()
        ):
            raise StorageConfigurationError(
                "Credenciales S3 incompletas (access_key/secret_key)."
            )

        decorator = retry_decorator or create_retry_decorator()
        self._get_with_retry = decorator(self._get_once)
        self._put_with_retry = decorator(self._put_once)
        self._list_with_retry = decorator(self._list_once)
        self._delete_with_retry = decorator(self._delete_once)

        if client is not None:
            self._client = client
            return

        # Lazy import para reducir costo de arranque.
        try:
            import boto3
        except Exception as exc:
            raise StorageConfigurationError("boto3 no está instalado.") from exc

        self._client = boto3.client(
            "s3",
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
            region_name=config.region or None,
            endpoint_url=config.endpoint_url or None,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def client(self):
        return self._client

    # =========================================================================
    # API pública (Port)
    # =========================================================================

    def get(self, key: str) -> Optional[bytes]:
        """Descarga el blob completo. Devuelve None si la key no existe."""
        self._require_key(key)
        try:
            return self._get_with_retry(key)
        except StorageNotFoundError:
            return None

    def put(self, key: str, data: bytes) -> None:
        """Sube un blob JSON (reemplaza el objeto existente)."""
        self._require_key(key)
        self._put_with_retry(key, data)

    def delete(self, key: str) -> None:
        """Borra el objeto. Borrar una key inexistente no es error."""
        self._require_key(key)
        try:
            self._delete_with_retry(key)
        except StorageNotFoundError:
            return

    def list_keys(self, prefix: str) -> List[str]:
        """Lista todas las keys bajo `prefix` (paginator list_objects_v2)."""
        return self._list_with_retry(prefix)

    # =========================================================================
    # Helpers privados
    # =========================================================================

    def _get_once(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            body = response["Body"]
            data = body.read()
            try:
                body.close()
            except Exception:  # noqa: BLE001
                pass
            return data
        except Exception as exc:
            raise self._map_storage_error(exc, key=key, action="get") from exc

    def _put_once(self, key: str, data: bytes) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=JSON_CONTENT_TYPE,
            )
        except Exception as exc:
            raise self._map_storage_error(exc, key=key, action="put") from exc

    def _delete_once(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except Exception as exc:
            raise self._map_storage_error(exc, key=key, action="delete") from exc

    def _list_once(self, prefix: str) -> List[str]:
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            keys: List[str] = []
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents") or []:
                    if obj.get("Key"):
                        keys.append(str(obj["Key"]))
            return keys
        except Exception as exc:
            raise self._map_storage_error(exc, key=prefix, action="list") from exc

    @staticmethod
    def _require_key(key: str) -> None:
        if not (key or "").strip():
            raise StorageRequestError("key de storage es requerido.")

    def _map_storage_error(
        self, exc: Exception, *, key: str, action: str
    ) -> StorageError:
        """
        Traduce errores del SDK a errores del subsistema.

        Regla:
          - Infra (boto3) queda encapsulada.
          - Capas superiores trabajan con StorageError (transient / terminal).
        """
        from botocore.exceptions import (
            ClientError,
            ConnectionClosedError,
            ConnectTimeoutError,
            EndpointConnectionError,
            ReadTimeoutError,
        )

        if isinstance(exc, StorageError):
            return exc

        # Timeouts / endpoint caído
        if isinstance(
            exc,
            (
                EndpointConnectionError,
                ConnectTimeoutError,
                ReadTimeoutError,
                ConnectionClosedError,
                TimeoutError,
                ConnectionError,
            ),
        ):
            logger.warning("Storage unavailable", extra={"action": action, "key": key})
            return StorageUnavailableError(
                "Storage no disponible (timeout/conexión).", original_error=exc
            )

        if isinstance(exc, ClientError):
            code = str((exc.response.get("Error") or {}).get("Code") or "")
            status = (exc.response.get("ResponseMetadata") or {}).get(
                "HTTPStatusCode"
            )

            if code in _NOT_FOUND_CODES:
                return StorageNotFoundError(key)

            if code in _PERMISSION_CODES:
                return StoragePermissionError(
                    "Permiso/credenciales inválidas en storage."
                )

            if code in _UNAVAILABLE_CODES or (
                isinstance(status, int) and status >= 500
            ):
                return StorageUnavailableError("Storage temporalmente no disponible.")

            logger.error(
                "Storage ClientError",
                extra={"action": action, "key": key, "code": code},
            )
            return StorageRequestError(
                f"Fallo de storage ({action}). code={code}", original_error=exc
            )

        logger.exception("Storage error", extra={"action": action, "key": key})
        return StorageRequestError(f"Fallo de storage ({action}).", original_error=exc)
