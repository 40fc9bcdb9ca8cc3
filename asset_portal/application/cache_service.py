"""
===============================================================================
TARJETA CRC — application/cache_service.py
===============================================================================

Class:
    CacheService

Responsibilities:
    - Orquestar MemoryCache (proceso) + DurableStore (S3) para entradas JSON.
    - get: memoria primero; en miss lee el durable store y puebla la memoria.
      El caller recibe siempre una copia (mutarla no altera la memoria).
    - put: escribe durable store y luego memoria (errores del store se propagan).
    - Job index "memory-first": update_job_index() nunca toca el durable store;
      persist_job_index() es el único flush explícito.
    - Master cache: lectura filtrada por status (sin mutar) y rebuild completo
      desde el asset source, con descarte de rebuilds viejos.

Collaborators:
    - infrastructure.cache.MemoryCache
    - domain.services.DurableStorePort / AssetSourcePort
    - crosscutting.rate_limit.TokenBucket (gate del listado de assets)
    - domain.assets.CacheEntry / MasterCache

Concurrencia:
    - Last-write-wins por key.
    - rebuild_cache(): cada llamada toma un número de generación; al commitear,
      si otra generación más nueva ya commiteó, el resultado se descarta entero.
      Commit + persistencia del rebuild corren bajo un lock.
===============================================================================
"""

from __future__ import annotations

import copy
import json
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..context import bind_context
from ..crosscutting.exceptions import TerminalInfraError
from ..crosscutting.logger import logger
from ..crosscutting.rate_limit import ASSET_LISTING_GATE_KEY, TokenBucket
from ..domain.activity import ActivityCache, ActivityPersistence
from ..domain.assets import AssetType, CacheEntry, MasterCache, StatusFilter
from ..domain.services import AssetSourcePort, DurableStorePort
from ..infrastructure.cache import MemoryCache

# Keys lógicas (memoria) -> "<prefix>/<key>.json" en el durable store.
JOB_INDEX_KEY = "jobs"
ACTIVITY_CACHE_KEY = "activity-cache"
ACTIVITY_PERSISTENCE_KEY = "activity-persistence"
MASTER_CACHE_KEY = "master-cache"
MASTER_METADATA_KEY = "metadata"

# TTL 0 => entrada pinned en MemoryCache.
PINNED = 0


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode(
        "utf-8"
    )


class CacheService:
    def __init__(
        self,
        *,
        durable_store: DurableStorePort,
        memory_cache: MemoryCache,
        asset_source: Optional[AssetSourcePort] = None,
        listing_gate: Optional[TokenBucket] = None,
        key_prefix: str = "cache",
        clock: Callable[[], str] = _utc_now_iso,
    ) -> None:
        self._store = durable_store
        self._memory = memory_cache
        self._asset_source = asset_source
        self._listing_gate = listing_gate
        self._prefix = (key_prefix or "").strip("/")
        self._clock = clock

        self._rebuild_lock = threading.Lock()
        self._rebuilds_started = 0
        self._committed_generation = 0

    def durable_key(self, key: str) -> str:
        name = f"{key}.json"
        return f"{self._prefix}/{name}" if self._prefix else name

    # =========================================================================
    # Entradas genéricas
    # =========================================================================

    def get(self, key: str) -> Optional[Any]:
        """
        Memoria primero; en miss lee el durable store y puebla la memoria.

        Returns:
            Copia del valor JSON deserializado, o None si no existe en ningún nivel.
        """
        value = self._read(key)
        return copy.deepcopy(value) if value is not None else None

    def put(self, key: str, value: Any) -> None:
        """
        Escribe durable store y memoria. Si el store falla, la memoria no cambia.
        """
        data = _encode(value)
        self._store.put(self.durable_key(key), data)
        # Copia independiente del objeto del caller (lo que quedó en el store).
        self._memory.set(key, json.loads(data))

    def delete(self, key: str) -> None:
        """Borra la entrada del durable store y de la memoria."""
        self._store.delete(self.durable_key(key))
        self._memory.delete(key)

    # =========================================================================
    # Job index (memory-first)
    # =========================================================================

    def update_job_index(self, jobs: List[Dict[str, Any]]) -> None:
        """Solo memoria (pinned). Sin I/O durable."""
        self._memory.set(JOB_INDEX_KEY, list(jobs), ttl_seconds=PINNED)

    def get_job_index(self) -> List[Dict[str, Any]]:
        cached = self._memory.get(JOB_INDEX_KEY)
        if cached is not None:
            return list(cached)

        # Proceso frío: el índice persistido (o vacío si nunca se persistió).
        stored = self._load_durable(JOB_INDEX_KEY)
        jobs = list(stored) if isinstance(stored, list) else []
        self._memory.set(JOB_INDEX_KEY, jobs, ttl_seconds=PINNED)
        return list(jobs)

    def persist_job_index(self) -> int:
        """
        Flush explícito del job index en memoria al durable store.

        Returns:
            Cantidad de jobs persistidos (0 si no hay índice en memoria).
        """
        jobs = self._memory.get(JOB_INDEX_KEY)
        if jobs is None:
            logger.debug("Job index not loaded in memory, nothing to persist")
            return 0
        snapshot = list(jobs)
        self._store.put(self.durable_key(JOB_INDEX_KEY), _encode(snapshot))
        logger.info("Job index persisted", extra={"jobs": len(snapshot)})
        return len(snapshot)

    # =========================================================================
    # Activity structures
    # =========================================================================

    def get_activity_cache(self) -> Optional[ActivityCache]:
        data = self._read(ACTIVITY_CACHE_KEY)
        return ActivityCache.from_dict(data) if data else None

    def put_activity_cache(self, cache: ActivityCache) -> None:
        self.put(ACTIVITY_CACHE_KEY, cache.to_dict())

    def get_activity_persistence(self) -> Optional[ActivityPersistence]:
        data = self._read(ACTIVITY_PERSISTENCE_KEY)
        return ActivityPersistence.from_dict(data) if data else None

    def put_activity_persistence(self, persistence: ActivityPersistence) -> None:
        self.put(ACTIVITY_PERSISTENCE_KEY, persistence.to_dict())

    def restore_activity_persistence(
        self, previous: Optional[ActivityPersistence]
    ) -> None:
        """Vuelve a `previous`; si no existía, borra la entrada."""
        if previous is None:
            self.delete(ACTIVITY_PERSISTENCE_KEY)
        else:
            self.put_activity_persistence(previous)

    # =========================================================================
    # Master cache
    # =========================================================================

    def get_master_cache(
        self, status: StatusFilter = StatusFilter.ALL
    ) -> MasterCache:
        """
        Entradas tal como están guardadas, opcionalmente filtradas por status.
        No hay filtrado por relaciones (ej: miembros de grupos archivados).
        """
        master = self._memory.get(MASTER_CACHE_KEY)
        if master is None:
            master = self._load_master_cache()
            self._memory.set(MASTER_CACHE_KEY, master)
        return master.filter_by_status(StatusFilter(status))

    def get_cache_entries(
        self,
        asset_type: Optional[AssetType] = None,
        status: StatusFilter = StatusFilter.ALL,
    ) -> List[CacheEntry]:
        master = self.get_master_cache(status)
        if asset_type is None:
            return list(master.iter_entries())
        return master.entries_for(AssetType(asset_type))

    def rebuild_cache(self) -> MasterCache:
        """
        Re-deriva el master cache desde el asset source, reemplaza la memoria
        y persiste. Si mientras tanto commiteó un rebuild más nuevo, este
        resultado se descarta y se devuelve el vigente.
        """
        if self._asset_source is None:
            raise TerminalInfraError("rebuild_cache requiere un asset source")

        with self._rebuild_lock:
            self._rebuilds_started += 1
            generation = self._rebuilds_started

        with bind_context("cache.rebuild"):
            logger.info("Starting cache rebuild", extra={"generation": generation})
            master = MasterCache(
                last_updated=self._clock(),
                entries={t: self._list_entries(t) for t in AssetType},
            )

            with self._rebuild_lock:
                if generation < self._committed_generation:
                    logger.warning(
                        "Discarding stale cache rebuild",
                        extra={
                            "generation": generation,
                            "committed_generation": self._committed_generation,
                        },
                    )
                    return self.get_master_cache()

                self._committed_generation = generation
                self._memory.set(MASTER_CACHE_KEY, master)
                self._persist_master_cache(master)

            logger.info(
                "Cache rebuild committed",
                extra={"generation": generation, "asset_counts": master.asset_counts()},
            )
            return master.filter_by_status(StatusFilter.ALL)

    # =========================================================================
    # Mantenimiento
    # =========================================================================

    def clear_memory_cache(self) -> None:
        self._memory.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "memory": self._memory.stats(),
            "rebuilds_started": self._rebuilds_started,
            "committed_generation": self._committed_generation,
        }

    def reset(self) -> None:
        """Vuelve al estado inicial del proceso (tests)."""
        with self._rebuild_lock:
            self._memory.clear()
            self._rebuilds_started = 0
            self._committed_generation = 0

    # =========================================================================
    # Helpers privados
    # =========================================================================

    def _read(self, key: str) -> Optional[Any]:
        cached = self._memory.get(key)
        if cached is not None:
            return cached

        value = self._load_durable(key)
        if value is not None:
            self._memory.set(key, value)
        return value

    def _load_durable(self, key: str) -> Optional[Any]:
        raw = self._store.get(self.durable_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (ValueError, UnicodeDecodeError) as exc:
            raise TerminalInfraError(
                f"Entrada de cache corrupta: {self.durable_key(key)}",
                original_error=exc,
            ) from exc

    def _list_entries(self, asset_type: AssetType) -> List[CacheEntry]:
        if self._listing_gate is not None:
            self._listing_gate.acquire(ASSET_LISTING_GATE_KEY)

        by_id: Dict[str, CacheEntry] = {}
        skipped = 0
        for record in self._asset_source.list_assets(asset_type):
            try:
                entry = CacheEntry.from_source(asset_type, record)
            except (ValueError, KeyError, TypeError) as exc:
                skipped += 1
                logger.debug(
                    "Skipping invalid asset record",
                    extra={"asset_type": asset_type.value, "error": str(exc)},
                )
                continue
            # (asset_type, asset_id) es único: el último record gana.
            by_id[entry.asset_id] = entry

        if skipped:
            logger.warning(
                "Invalid asset records skipped during rebuild",
                extra={"asset_type": asset_type.value, "skipped": skipped},
            )
        return list(by_id.values())

    def _persist_master_cache(self, master: MasterCache) -> None:
        for asset_type in AssetType:
            self._store.put(
                self.durable_key(asset_type.value),
                _encode([e.to_dict() for e in master.entries.get(asset_type, [])]),
            )
        self._store.put(
            self.durable_key(MASTER_METADATA_KEY), _encode(master.metadata_dict())
        )

    def _load_master_cache(self) -> MasterCache:
        metadata = self._load_durable(MASTER_METADATA_KEY) or {}
        entries: Dict[AssetType, List[CacheEntry]] = {}
        for asset_type in AssetType:
            rows = self._load_durable(asset_type.value) or []
            entries[asset_type] = [CacheEntry.from_dict(row) for row in rows]
        return MasterCache(
            version=str(metadata.get("version") or "1.0"),
            last_updated=str(metadata.get("lastUpdated") or ""),
            entries=entries,
        )
