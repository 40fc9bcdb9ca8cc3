"""
============================================================
TARJETA CRC — asset_portal/infrastructure/cache.py
============================================================
Module: MemoryCache (process-local, LRU + TTL)

Responsibilities:
  - Guardar valores ya deserializados (job index, master cache, activity cache)
    para evitar ir al durable store en cada lectura.
  - Expiración por TTL por entrada y métricas simples (hits/misses).
  - Entradas "pinned" (ttl_seconds=0): nunca expiran ni se desalojan.
    El job index vive así hasta que alguien llama persist_job_index().
  - Exponer una API simple: get / set / delete / clear / stats

Collaborators:
  - application.cache_service.CacheService (único consumidor)
  - threading.Lock para thread-safety

Policy / Design Notes:
  - NO comparte estado entre procesos (cada worker tiene su cache).
  - Read-your-write: un set() es visible inmediatamente para el mismo proceso.
  - LRU real con OrderedDict para eviction determinística.
============================================================
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Optional


@dataclass(frozen=True, slots=True)
class _MemoryEntry:
    """
    Invariante:
      - expires_at es epoch seconds; None = pinned (no expira, no se desaloja).
    """

    value: Any
    expires_at: Optional[float]

    @property
    def pinned(self) -> bool:
        return self.expires_at is None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class MemoryCache:
    """
    Cache en memoria con:
      - TTL por entrada (default configurable)
      - Eviction LRU real usando OrderedDict (saltea entradas pinned)
      - Thread-safety con Lock
    """

    def __init__(
        self,
        *,
        max_size: int = 10_000,
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")

        self._ttl_seconds = float(ttl_seconds)
        self._max_size = int(max_size)
        self._clock = clock

        self._cache: "OrderedDict[str, _MemoryEntry]" = OrderedDict()
        self._lock = Lock()

        # stats
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0

    def get(self, key: str) -> Optional[Any]:
        """
        Lookup LRU:
          - hit => move_to_end(key) para marcar como "most recently used"
          - expired => borrar y contar como miss
        """
        now = self._clock()

        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(now):
                self._cache.pop(key, None)
                self._expired += 1
                self._misses += 1
                return None

            self._cache.move_to_end(key, last=True)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """
        Inserta / reemplaza una entrada.

        TTL:
          - None => TTL default del cache
          - 0    => pinned
          - > 0  => override por llamada
        """
        if ttl_seconds is not None and ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")

        ttl = self._ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        expires_at = None if ttl == 0 else self._clock() + ttl
        entry = _MemoryEntry(value=value, expires_at=expires_at)

        with self._lock:
            if key in self._cache:
                self._cache[key] = entry
                self._cache.move_to_end(key, last=True)
                return

            if len(self._cache) >= self._max_size:
                self._evict_one()

            self._cache[key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        """Vacía la cache completa (incluye entradas pinned)."""
        with self._lock:
            self._cache.clear()

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "backend": "in-memory",
                "size": len(self._cache),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "expired": self._expired,
                "evictions": self._evictions,
                "hit_rate": (self._hits / total) if total > 0 else 0.0,
            }

    def _evict_one(self) -> None:
        # Se llama con el lock tomado. Si todo está pinned, el cache crece.
        for key, entry in self._cache.items():
            if not entry.pinned:
                del self._cache[key]
                self._evictions += 1
                return
