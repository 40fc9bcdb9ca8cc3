"""
===============================================================================
TARJETA CRC — asset_portal/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer dependencias (stores, readers, gates, servicios) siguiendo DIP.
  - Mantener UNA instancia por proceso de CacheService / ActivityAggregator
    (lru_cache), con reset explícito para aislar tests.
  - Centralizar decisiones runtime basadas en Settings (config).

Colaboradores:
  - asset_portal.crosscutting.config.get_settings
  - asset_portal.crosscutting.rate_limit (gates de proceso)
  - asset_portal.infrastructure.* (implementaciones)
  - asset_portal.application.* (servicios)

Notas:
  - Este archivo NO contiene lógica de negocio.
  - Sin bucket configurado se usa InMemoryDurableStore (dev local / tests).
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache

from .application.activity_aggregator import ActivityAggregator
from .application.cache_service import CacheService
from .application.event_compactor import EventCompactor
from .application.persistence_merger import PersistenceMerger
from .crosscutting.config import get_settings
from .crosscutting.rate_limit import (
    get_asset_listing_gate,
    get_audit_log_gate,
    reset_rate_gates,
)
from .domain.services import AssetSourcePort, AuditLogReaderPort, DurableStorePort
from .infrastructure.assets import S3ExportedAssetSource
from .infrastructure.audit import CloudTrailAuditLogReader
from .infrastructure.cache import MemoryCache
from .infrastructure.storage import InMemoryDurableStore, S3Config, S3DurableStore


@lru_cache(maxsize=1)
def get_memory_cache() -> MemoryCache:
    settings = get_settings()
    return MemoryCache(
        max_size=settings.memory_cache_max_size,
        ttl_seconds=settings.memory_cache_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_durable_store() -> DurableStorePort:
    """
    S3 si hay bucket configurado; si no, store en memoria.
    """
    settings = get_settings()
    if not settings.durable_store_bucket:
        return InMemoryDurableStore()

    config = S3Config(
        bucket=settings.durable_store_bucket,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key,
        region=settings.s3_region or None,
        endpoint_url=settings.s3_endpoint_url or None,
    )
    return S3DurableStore(config)


@lru_cache(maxsize=1)
def get_asset_source() -> AssetSourcePort | None:
    """Solo disponible sobre S3 (lee los exports del mismo bucket)."""
    store = get_durable_store()
    if isinstance(store, S3DurableStore):
        return S3ExportedAssetSource(store)
    return None


@lru_cache(maxsize=1)
def get_audit_log_reader() -> AuditLogReaderPort:
    settings = get_settings()
    return CloudTrailAuditLogReader(
        gate=get_audit_log_gate(),
        region=settings.audit_region or settings.s3_region or None,
        max_pages=settings.audit_max_pages_per_query,
    )


@lru_cache(maxsize=1)
def get_cache_service() -> CacheService:
    settings = get_settings()
    return CacheService(
        durable_store=get_durable_store(),
        memory_cache=get_memory_cache(),
        asset_source=get_asset_source(),
        listing_gate=get_asset_listing_gate(),
        key_prefix=settings.cache_key_prefix,
    )


@lru_cache(maxsize=1)
def get_activity_aggregator() -> ActivityAggregator:
    settings = get_settings()
    return ActivityAggregator(
        cache_service=get_cache_service(),
        audit_reader=get_audit_log_reader(),
        compactor=EventCompactor(event_source=settings.audit_event_source),
        merger=PersistenceMerger(),
        max_lookback_days=settings.activity_max_lookback_days,
    )


def reset_container() -> None:
    """
    Descarta todas las instancias de proceso (tests / recarga de config).
    """
    for factory in (
        get_activity_aggregator,
        get_cache_service,
        get_audit_log_reader,
        get_asset_source,
        get_durable_store,
        get_memory_cache,
    ):
        factory.cache_clear()
    reset_rate_gates()
