"""
===============================================================================
TARJETA CRC — asset_portal/context.py (Contexto por invocación)
===============================================================================

Responsabilidades:
  - Mantener contexto "invocation-scoped" usando ContextVars (async-safe).
  - Permitir correlación de logs sin pasar parámetros por todo el stack.
  - Proveer helpers mínimos: bind_context(), get_context_dict(), clear_context().

Colaboradores:
  - asset_portal.crosscutting.logger: enriquece logs leyendo get_context_dict().
  - application.activity_aggregator: setea request_id/operation por refresh.
  - application.cache_service: setea operation durante rebuild.

Restricciones:
  - Solo tipos primitivos (str) para serialización segura.
  - Defaults vacíos ("") para evitar None y simplificar JSON.
===============================================================================
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Final, Iterator
from uuid import uuid4

# Identificador de la invocación (refresh, rebuild, request del handler).
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Operación en curso (ej: "activity.refresh", "cache.rebuild").
operation_var: ContextVar[str] = ContextVar("operation", default="")

_CTX_REQUEST_ID: Final[str] = "request_id"
_CTX_OPERATION: Final[str] = "operation"


def get_context_dict() -> Dict[str, str]:
    """
    Devuelve solo las claves con valor (evita ruido en logs).
    """
    ctx: Dict[str, str] = {}
    request_id = request_id_var.get()
    if request_id:
        ctx[_CTX_REQUEST_ID] = request_id
    operation = operation_var.get()
    if operation:
        ctx[_CTX_OPERATION] = operation
    return ctx


@contextmanager
def bind_context(operation: str, request_id: str | None = None) -> Iterator[str]:
    """
    Setea operation/request_id durante el bloque y restaura los valores previos.

    Si ya hay un request_id (ej: lo puso el handler), se reutiliza.
    """
    effective_id = request_id or request_id_var.get() or str(uuid4())
    rid_token = request_id_var.set(effective_id)
    op_token = operation_var.set(operation)
    try:
        yield effective_id
    finally:
        operation_var.reset(op_token)
        request_id_var.reset(rid_token)


def clear_context() -> None:
    request_id_var.set("")
    operation_var.set("")
