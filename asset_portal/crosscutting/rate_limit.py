# asset_portal/crosscutting/rate_limit.py
"""
===============================================================================
MÓDULO: Rate gates (Token Bucket) - in-memory
===============================================================================

Objetivo
--------
Suavizar las llamadas a colaboradores externos con cuota estricta:
- Audit log (CloudTrail LookupEvents permite ~2 req/s por cuenta)
- Listado de assets usado por rebuildCache

Incluye:
- Token bucket por key (suaviza bursts)
- consume(): decisión no bloqueante (allow/deny + retry_after)
- acquire(): espera bloqueante hasta obtener un token (con jitter)

Mejoras incluidas
-----------------
- Limpieza por TTL para evitar leak de memoria
- Límite de buckets con eviction simple
- Reloj y sleep inyectables (tests deterministas)

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componentes:
  - TokenBucket
  - get_audit_log_gate() / get_asset_listing_gate()

Responsabilidades:
  - Decidir allow/deny
  - Bloquear al caller hasta que haya token
  - Mantener estado thread-safe

Colaboradores:
  - crosscutting.config
  - crosscutting.logger
  - infrastructure.audit (CloudTrail) / application.cache_service (rebuild)
===============================================================================
"""

from __future__ import annotations

import random
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from .exceptions import TransientInfraError
from .logger import logger

# Jitter máximo agregado a cada espera (evita despertares sincronizados).
_JITTER_SECONDS = 0.01


@dataclass
class Bucket:
    tokens: float
    last_refill: float
    last_seen: float


class TokenBucket:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      TokenBucket

    Responsabilidades:
      - Implementar algoritmo token-bucket por key
      - Refill por tiempo
      - TTL cleanup
      - Eviction por máximo de buckets

    Colaboradores:
      - CloudTrailAuditLogReader, CacheService.rebuild_cache
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        rps: float,
        burst: int,
        *,
        ttl_seconds: int = 3600,
        max_buckets: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rps <= 0:
            raise ValueError("rps debe ser > 0")
        if burst <= 0:
            raise ValueError("burst debe ser > 0")
        self.rps = float(rps)
        self.burst = int(burst)

        self.ttl_seconds = int(ttl_seconds)
        self.max_buckets = int(max_buckets)

        self._clock = clock
        self._sleep = sleep
        self._buckets: "OrderedDict[str, Bucket]" = OrderedDict()
        self._lock = threading.Lock()
        self._ops = 0

    def consume(self, key: str) -> tuple[bool, float]:
        with self._lock:
            now = self._clock()
            self._ops += 1

            self._cleanup_if_needed(now)

            bucket = self._get_or_create_bucket(key, now)
            self._refill(bucket, now)
            bucket.last_seen = now

            if bucket.tokens >= 1:
                bucket.tokens -= 1
                self._buckets.move_to_end(key, last=True)
                return True, 0.0

            tokens_needed = 1 - bucket.tokens
            retry_after = tokens_needed / self.rps
            self._buckets.move_to_end(key, last=True)
            return False, retry_after

    def acquire(self, key: str, *, timeout_seconds: Optional[float] = None) -> float:
        """
        Espera (bloqueando al caller) hasta consumir un token.

        Returns:
            Segundos esperados en total (0.0 si había token disponible).

        Raises:
            TransientInfraError: si timeout_seconds se agota sin obtener token.
        """
        waited = 0.0
        while True:
            allowed, retry_after = self.consume(key)
            if allowed:
                if waited > 0:
                    logger.debug(
                        "rate gate: token obtenido tras espera",
                        extra={"gate_key": key, "waited_seconds": round(waited, 3)},
                    )
                return waited

            delay = retry_after + random.uniform(0, _JITTER_SECONDS)
            if timeout_seconds is not None and waited + delay > timeout_seconds:
                raise TransientInfraError(
                    f"Rate gate '{key}' sin tokens tras {round(waited, 2)}s"
                )
            self._sleep(delay)
            waited += delay

    def get_remaining(self, key: str) -> int:
        with self._lock:
            now = self._clock()
            b = self._buckets.get(key)
            if not b:
                return self.burst
            self._refill(b, now)
            return int(b.tokens)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()

    # --------------------------- internos ---------------------------

    def _get_or_create_bucket(self, key: str, now: float) -> Bucket:
        b = self._buckets.get(key)
        if b:
            return b

        if len(self._buckets) >= self.max_buckets:
            self._buckets.popitem(last=False)

        b = Bucket(tokens=float(self.burst), last_refill=now, last_seen=now)
        self._buckets[key] = b
        return b

    def _refill(self, bucket: Bucket, now: float) -> None:
        elapsed = now - bucket.last_refill
        if elapsed <= 0:
            return
        bucket.tokens = min(self.burst, bucket.tokens + elapsed * self.rps)
        bucket.last_refill = now

    def _cleanup_if_needed(self, now: float) -> None:
        # Cada ~256 operaciones hacemos cleanup para amortizar costo
        if (self._ops & 0xFF) != 0:
            return

        ttl = self.ttl_seconds
        if ttl <= 0:
            return

        to_delete = []
        for k, b in self._buckets.items():
            if now - b.last_seen > ttl:
                to_delete.append(k)
            else:
                break

        for k in to_delete:
            self._buckets.pop(k, None)


# =============================================================================
# Gates de proceso (uno por colaborador externo)
# =============================================================================
AUDIT_LOG_GATE_KEY = "audit-log"
ASSET_LISTING_GATE_KEY = "asset-listing"

_audit_log_gate: Optional[TokenBucket] = None
_asset_listing_gate: Optional[TokenBucket] = None
_gates_lock = threading.Lock()


def get_audit_log_gate() -> TokenBucket:
    global _audit_log_gate
    with _gates_lock:
        if _audit_log_gate is None:
            from .config import get_settings

            s = get_settings()
            _audit_log_gate = TokenBucket(
                rps=s.audit_log_rate_per_second, burst=s.audit_log_burst
            )
        return _audit_log_gate


def get_asset_listing_gate() -> TokenBucket:
    global _asset_listing_gate
    with _gates_lock:
        if _asset_listing_gate is None:
            from .config import get_settings

            s = get_settings()
            _asset_listing_gate = TokenBucket(
                rps=s.asset_listing_rate_per_second, burst=s.asset_listing_burst
            )
        return _asset_listing_gate


def reset_rate_gates() -> None:
    global _audit_log_gate, _asset_listing_gate
    with _gates_lock:
        _audit_log_gate = None
        _asset_listing_gate = None
