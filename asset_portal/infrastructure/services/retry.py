"""asset_portal.infrastructure.services.retry

Name: Retry Helper with Exponential Backoff + Jitter

Qué es
------
Utilidad cross-cutting de **resiliencia** para llamadas al durable store (S3),
al audit log (CloudTrail) y al listado de assets.
Implementa:
  - Clasificación de errores: **transient** (reintentar) vs **terminal** (fail-fast)
  - Decorator de `tenacity` para aplicar **exponential backoff + jitter**
  - Logging estructurado de intentos de retry (incluye request_id cuando está disponible)

Patrones de diseño
------------------
- **Decorator**: `create_retry_decorator()` retorna un decorator que envuelve una función.
- **Policy Object** (implícito): `is_transient_error()` es la política de clasificación.
- **Fail-fast**: errores terminales no se reintentan.

CRC (Component Card)
--------------------
Component: retry helper
Responsibilities:
  - Decidir qué errores son reintentables
  - Proveer un decorator estándar (tenacity) con backoff+jitter
  - Loguear intentos y contexto útil para debugging
Collaborators:
  - tenacity (motor de retry)
  - crosscutting.config.get_settings (config de attempts/delays)
  - crosscutting.exceptions (TransientInfraError / TerminalInfraError)
  - crosscutting.logger (logging estructurado)
Constraints:
  - Reintentar SOLO errores transitorios (throttling, 5xx, timeouts, connection issues)
  - No reintentar errores terminales (permisos, credenciales, validación)
  - Jitter para evitar thundering herd
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ...context import request_id_var
from ...crosscutting.config import get_settings
from ...crosscutting.exceptions import (
    TerminalInfraError,
    TransientInfraError,
    ValidationError,
)
from ...crosscutting.logger import logger

T = TypeVar("T")


# ---------------------------------------------------------------------------
# HTTP / AWS code policies
# ---------------------------------------------------------------------------

# R: HTTP status codes que indican fallas transitorias (reintentables)
TRANSIENT_HTTP_CODES: frozenset[int] = frozenset(
    {
        408,  # Request Timeout
        429,  # Too Many Requests (rate limit)
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }
)

# R: HTTP status codes que indican fallas permanentes (no reintentar)
PERMANENT_HTTP_CODES: frozenset[int] = frozenset(
    {
        400,  # Bad Request
        401,  # Unauthorized
        403,  # Forbidden
        404,  # Not Found
    }
)

# R: Códigos de error AWS (botocore ClientError) que indican throttling / caída.
TRANSIENT_AWS_ERROR_CODES: frozenset[str] = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "SlowDown",
        "ServiceUnavailable",
        "InternalError",
        "InternalFailure",
        "RequestTimeout",
    }
)


def get_aws_error_code(exception: BaseException) -> str | None:
    """R: Extrae `Error.Code` de un botocore ClientError (o similar)."""
    response = getattr(exception, "response", None)
    if not isinstance(response, dict):
        return None
    code = (response.get("Error") or {}).get("Code")
    return str(code) if code else None


def get_http_status_code(exception: BaseException) -> int | None:
    """R: Extrae un status code HTTP desde distintos tipos de exception.

    Soporta (best-effort):
      - botocore ClientError (response["ResponseMetadata"]["HTTPStatusCode"])
      - excepciones con `response.status_code`
      - excepciones de SDKs que expongan `status_code`

    Returns:
        int | None: HTTP status code si se encuentra, o None si no.
    """

    # R: botocore ClientError expone `response` como dict.
    resp = getattr(exception, "response", None)
    if isinstance(resp, dict):
        status_code = (resp.get("ResponseMetadata") or {}).get("HTTPStatusCode")
        if isinstance(status_code, int):
            return status_code
    elif resp is not None and hasattr(resp, "status_code"):
        status_code = getattr(resp, "status_code")
        if isinstance(status_code, int):
            return status_code

    # R: Algunos SDKs exponen `status_code` directamente.
    status_code = getattr(exception, "status_code", None)
    if isinstance(status_code, int):
        return status_code

    return None


def is_transient_error(exception: BaseException) -> bool:
    """R: Decide si un error es transitorio (reintentar) o terminal (fail-fast).

    Reglas (en orden):
      1) Errores ya tipados por los adapters: Transient → True, Terminal/Validation → False.
      2) Código de error AWS conocido como throttling/caída: True.
      3) Si hay status code HTTP: permanent → False, transient → True.
      4) Si es una excepción típica de timeout/connection (built-in): True.
      5) Heurística por nombre/mensaje (best-effort).
      6) Default: fail-fast (False) para no reintentar errores desconocidos.
    """

    # R: 1) Taxonomía propia
    if isinstance(exception, TransientInfraError):
        return True
    if isinstance(exception, (TerminalInfraError, ValidationError)):
        return False

    # R: 2) Códigos AWS
    aws_code = get_aws_error_code(exception)
    if aws_code is not None and aws_code in TRANSIENT_AWS_ERROR_CODES:
        return True

    # R: 3) Clasificación por status code
    status_code = get_http_status_code(exception)
    if status_code is not None:
        if status_code in PERMANENT_HTTP_CODES:
            return False
        if status_code in TRANSIENT_HTTP_CODES or status_code >= 500:
            return True

    # R: 4) Tipos built-in comunes
    if isinstance(exception, (TimeoutError, ConnectionError)):
        return True

    # R: 5) Heurística por nombre de clase (botocore: ReadTimeoutError, EndpointConnectionError, ...)
    exception_name = type(exception).__name__.lower()
    transient_name_patterns = (
        "timeout",
        "timedout",
        "connection",
        "connect",
        "temporary",
        "unavailable",
        "throttl",
    )
    if any(p in exception_name for p in transient_name_patterns):
        return True

    # R: Heurística por mensaje (último recurso)
    message = str(exception).lower()
    transient_message_patterns = (
        "rate exceeded",
        "rate limit",
        "too many requests",
        "temporarily unavailable",
        "service unavailable",
        "connection reset",
        "connection refused",
        "timed out",
    )
    if any(p in message for p in transient_message_patterns):
        return True

    # R: Default conservador: si no sabemos, NO reintentamos.
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    """R: Loguea cada intento antes de dormir (before_sleep)."""

    fn = getattr(retry_state, "fn", None)
    fn_name = getattr(fn, "__name__", "unknown")
    attempt = getattr(retry_state, "attempt_number", 0)
    wait_time = (
        retry_state.next_action.sleep
        if getattr(retry_state, "next_action", None) is not None
        else 0
    )

    exc: Optional[BaseException] = None
    if getattr(retry_state, "outcome", None) is not None:
        exc = retry_state.outcome.exception()

    logger.warning(
        "Retrying external call",
        extra={
            "function": fn_name,
            "attempt": attempt,
            "wait_seconds": round(float(wait_time), 2),
            "request_id": request_id_var.get() or None,
            "error": str(exc) if exc else None,
            "error_type": type(exc).__name__ if exc else None,
        },
    )


def create_retry_decorator(
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """R: Crea un decorator `tenacity` con exponential backoff + jitter.

    Config:
      - stop: `stop_after_attempt(max_attempts)`
      - wait: `wait_exponential_jitter(initial=base_delay, max=max_delay)`
      - retry: solo si `is_transient_error(exception)`
      - before_sleep: `_log_retry`
      - reraise: True (propaga la última excepción, ya tipada)
    """
    settings = get_settings()

    _max_attempts = (
        settings.retry_max_attempts if max_attempts is None else max_attempts
    )
    _base_delay = (
        settings.retry_base_delay_seconds if base_delay is None else float(base_delay)
    )
    _max_delay = (
        settings.retry_max_delay_seconds if max_delay is None else float(max_delay)
    )

    if _max_attempts <= 0:
        raise ValueError("max_attempts must be > 0")
    if _base_delay < 0:
        raise ValueError("base_delay must be >= 0")
    if _max_delay <= 0:
        raise ValueError("max_delay must be > 0")

    return retry(
        stop=stop_after_attempt(_max_attempts),
        wait=wait_exponential_jitter(
            initial=_base_delay,
            max=_max_delay,
            jitter=_base_delay,
        ),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_retry,
        reraise=True,
    )


def with_retry(func: Callable[..., T]) -> Callable[..., T]:
    """R: Decorator simple que aplica retry con settings por defecto."""

    decorator = create_retry_decorator()
    wrapped_func = decorator(func)

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        return wrapped_func(*args, **kwargs)

    return wrapper
