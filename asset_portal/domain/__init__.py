"""Dominio: modelos de assets/actividad y puertos."""

from .activity import (
    ActivityCache,
    ActivityPersistence,
    ActivityRefreshResult,
    ActivitySummary,
    AssetActivity,
    AssetActivityCounts,
    MinimalEvent,
    UserActivity,
    UserActivityCounts,
)
from .assets import (
    AssetStatus,
    AssetType,
    CacheEntry,
    MasterCache,
    StatusFilter,
    StorageType,
)
from .services import (
    AssetSourcePort,
    AuditLogReaderPort,
    DurableStorePort,
    UserGroupsPort,
)

__all__ = [
    "ActivityCache",
    "ActivityPersistence",
    "ActivityRefreshResult",
    "ActivitySummary",
    "AssetActivity",
    "AssetActivityCounts",
    "MinimalEvent",
    "UserActivity",
    "UserActivityCounts",
    "AssetStatus",
    "AssetType",
    "CacheEntry",
    "MasterCache",
    "StatusFilter",
    "StorageType",
    "AssetSourcePort",
    "AuditLogReaderPort",
    "DurableStorePort",
    "UserGroupsPort",
]
