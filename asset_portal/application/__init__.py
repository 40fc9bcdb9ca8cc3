"""Aplicación: cache service, compactación, agregación y merge de actividad."""

from .activity_aggregator import ActivityAggregator, RefreshStage
from .cache_service import CacheService
from .event_compactor import ASSET_EVENT_CONFIG, EventCompactor
from .persistence_merger import PersistenceMerger
from .schemas import ActivityRefreshRequest, parse_refresh_request

__all__ = [
    "ActivityAggregator",
    "RefreshStage",
    "CacheService",
    "ASSET_EVENT_CONFIG",
    "EventCompactor",
    "PersistenceMerger",
    "ActivityRefreshRequest",
    "parse_refresh_request",
]
