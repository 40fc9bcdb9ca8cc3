"""
===============================================================================
CRC CARD — infrastructure/audit/cloudtrail_reader.py
===============================================================================

Clase:
  CloudTrailAuditLogReader (Adapter)

Responsabilidades:
  - Implementar AuditLogReaderPort contra AWS CloudTrail (LookupEvents).
  - Paginar por NextToken hasta agotarlo; superar el tope de páginas es un error
    (nunca se devuelve una ventana parcial).
  - Pedir un token al rate gate ANTES de cada página (LookupEvents ~2 req/s).
  - Reintentar throttling / 5xx con la retry policy.
  - Devolver los raw records tal cual (CloudTrailEvent sigue siendo un JSON string).

Colaboradores:
  - domain.services.AuditLogReaderPort (port)
  - crosscutting.rate_limit.TokenBucket (gate)
  - infrastructure.services.retry (backoff + jitter)
  - infrastructure.audit.errors (errores tipados)
  - boto3/botocore (SDK, oculto por este adapter)
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ...crosscutting.logger import logger
from ...crosscutting.rate_limit import AUDIT_LOG_GATE_KEY, TokenBucket
from ..services.retry import create_retry_decorator, is_transient_error
from .errors import (
    AuditLogError,
    AuditLogPageLimitError,
    AuditLogPermissionError,
    AuditLogUnavailableError,
)

MAX_RESULTS_PER_REQUEST = 50
EVENT_NAME_ATTRIBUTE = "EventName"

_PERMISSION_CODES = {
    "AccessDeniedException",
    "AccessDenied",
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "ExpiredTokenException",
}


class CloudTrailAuditLogReader:
    """
    Lector del audit log.

    Implementa:
      - get_events_by_name
    """

    def __init__(
        self,
        *,
        gate: TokenBucket,
        region: Optional[str] = None,
        max_pages: int = 1000,
        client=None,
        retry_decorator: Callable | None = None,
    ) -> None:
        if max_pages <= 0:
            raise ValueError("max_pages must be > 0")

        self._gate = gate
        self._max_pages = int(max_pages)

        decorator = retry_decorator or create_retry_decorator()
        self._lookup_with_retry = decorator(self._lookup_page)

        if client is not None:
            self._client = client
            return

        import boto3

        self._client = boto3.client("cloudtrail", region_name=region or None)

    def get_events_by_name(
        self, event_name: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        """
        Devuelve todos los raw records de `event_name` en [start, end].

        Raises:
            AuditLogUnavailableError: throttling / caída tras agotar reintentos.
            AuditLogPermissionError: permisos o request inválido.
            AuditLogPageLimitError: quedan páginas tras `max_pages` consultas.
        """
        records: List[Dict[str, Any]] = []
        next_token: Optional[str] = None
        pages = 0

        while True:
            params: Dict[str, Any] = {
                "LookupAttributes": [
                    {
                        "AttributeKey": EVENT_NAME_ATTRIBUTE,
                        "AttributeValue": event_name,
                    }
                ],
                "StartTime": start,
                "EndTime": end,
                "MaxResults": MAX_RESULTS_PER_REQUEST,
            }
            if next_token:
                params["NextToken"] = next_token

            self._gate.acquire(AUDIT_LOG_GATE_KEY)
            response = self._lookup_with_retry(params)
            pages += 1

            records.extend(response.get("Events") or [])
            next_token = response.get("NextToken")

            if not next_token:
                break
            if pages >= self._max_pages:
                logger.error(
                    "Audit log page cap reached with pages pending",
                    extra={
                        "event_name": event_name,
                        "pages": pages,
                        "records": len(records),
                    },
                )
                raise AuditLogPageLimitError(
                    f"LookupEvents para {event_name} excede {self._max_pages} páginas"
                )

        logger.info(
            "Fetched audit records",
            extra={"event_name": event_name, "pages": pages, "records": len(records)},
        )
        return records

    def _lookup_page(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self._client.lookup_events(**params)
        except Exception as exc:
            raise self._map_error(exc, event_name=_event_name(params)) from exc

    @staticmethod
    def _map_error(exc: Exception, *, event_name: str) -> AuditLogError:
        if isinstance(exc, AuditLogError):
            return exc

        code = ""
        response = getattr(exc, "response", None)
        if isinstance(response, dict):
            code = str((response.get("Error") or {}).get("Code") or "")

        if code in _PERMISSION_CODES:
            return AuditLogPermissionError(
                f"Sin permisos para leer el audit log. code={code}", original_error=exc
            )

        if is_transient_error(exc):
            logger.warning(
                "Audit log unavailable",
                extra={"event_name": event_name, "code": code or None},
            )
            return AuditLogUnavailableError(
                "Audit log temporalmente no disponible.", original_error=exc
            )

        logger.error(
            "Audit log request failed",
            extra={"event_name": event_name, "code": code or None},
        )
        return AuditLogPermissionError(
            f"Fallo de audit log. code={code or type(exc).__name__}",
            original_error=exc,
        )


def _event_name(params: Dict[str, Any]) -> str:
    for attr in params.get("LookupAttributes") or []:
        if attr.get("AttributeKey") == EVENT_NAME_ATTRIBUTE:
            return str(attr.get("AttributeValue"))
    return ""
