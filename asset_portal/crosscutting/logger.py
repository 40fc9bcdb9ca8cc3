# asset_portal/crosscutting/logger.py
"""
===============================================================================
MÓDULO: Logger estructurado (JSON) con contexto de invocación
===============================================================================

Objetivo
--------
Cada refresh de actividad o rebuild del master cache deja una traza:
- Una línea JSON por evento (apta para CloudWatch Logs Insights)
- Con request_id / operation tomados de asset_portal/context.py
- Sin credenciales S3 ni tokens, y sin volcar raw records del audit log

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  JSONFormatter + setup_logger()

Responsabilidades:
  - Serializar LogRecord -> JSON (campos base + contexto + extra)
  - Redactar por nombre de clave (coincidencia parcial: "s3_secret_key",
    "SessionToken", ...)
  - Resumir raw records de CloudTrail pasados en `extra`
  - Elegir nivel y formato desde Settings

Colaboradores:
  - asset_portal/context.py (ContextVars)
  - crosscutting/config.py (log_level / log_json)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# Atributos que todo LogRecord trae de fábrica; el resto vino por `extra=`.
_RESERVED_ATTRS: frozenset[str] = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "taskName",
}

_REDACTED = "***REDACTADO***"
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class _Redactor:
    """
    Limpia valores de `extra` antes de serializarlos.

    Reglas, en orden:
      1. Clave que contiene un fragmento sensible -> redactada.
      2. Más allá de `max_depth` -> marcador de truncado.
      3. Raw record de CloudTrail -> resumen con EventId / EventName.
      4. Strings largos se recortan; bytes se reemplazan por su tamaño.
    """

    SENSITIVE_FRAGMENTS = (
        "password",
        "secret",
        "token",
        "authorization",
        "access_key",
        "credential",
    )

    def __init__(self, max_str: int = 4_000, max_depth: int = 4):
        self._max_str = max_str
        self._max_depth = max_depth

    def is_sensitive(self, key: str) -> bool:
        lowered = key.lower()
        return any(fragment in lowered for fragment in self.SENSITIVE_FRAGMENTS)

    def sanitize(self, value: Any, *, depth: int = 0, key: str | None = None) -> Any:
        if key and self.is_sensitive(key):
            return _REDACTED
        if depth > self._max_depth:
            return "***TRUNCADO***"

        if isinstance(value, str):
            if len(value) > self._max_str:
                return f"{value[: self._max_str]}…(+{len(value) - self._max_str} chars)"
            return value
        if isinstance(value, (bytes, bytearray)):
            return f"<bytes {len(value)}B>"
        if isinstance(value, dict):
            if "CloudTrailEvent" in value:
                return _summarize_audit_record(value)
            return {
                str(k): self.sanitize(v, depth=depth + 1, key=str(k))
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.sanitize(v, depth=depth + 1, key=key) for v in value]
        if isinstance(value, (int, float, bool)) or value is None:
            return value
        return str(value)


def _summarize_audit_record(record: dict) -> str:
    return (
        f"<audit record EventId={record.get('EventId', '?')} "
        f"EventName={record.get('EventName', '?')}>"
    )


class JSONFormatter(logging.Formatter):
    """LogRecord -> una línea JSON compacta."""

    def __init__(self):
        super().__init__()
        self._redactor = _Redactor()

    def format(self, record: logging.LogRecord) -> str:
        from ..context import get_context_dict

        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
            "pid": os.getpid(),
            **get_context_dict(),
        }

        payload.update(
            (k, self._redactor.sanitize(v, key=k))
            for k, v in vars(record).items()
            if k not in _RESERVED_ATTRS
        )

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": self.formatException(record.exc_info).splitlines(),
            }

        return json.dumps(
            payload, ensure_ascii=False, default=str, separators=(",", ":")
        )


def _log_preferences() -> tuple[int, bool]:
    """(nivel, json?) desde Settings; INFO + JSON si la config no carga."""
    try:
        from .config import get_settings

        settings = get_settings()
    except Exception:  # noqa: BLE001
        return logging.INFO, True

    level = logging.getLevelName((settings.log_level or "INFO").upper())
    return (level if isinstance(level, int) else logging.INFO), bool(settings.log_json)


def setup_logger(name: str = "asset-portal") -> logging.Logger:
    """Logger del proceso. Idempotente: no duplica handlers al reimportar."""
    log = logging.getLogger(name)
    level, use_json = _log_preferences()
    log.setLevel(level)

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter() if use_json else logging.Formatter(_TEXT_FORMAT))
        log.addHandler(handler)

    return log


logger = setup_logger()
