"""
===============================================================================
TARJETA CRC — application/activity_aggregator.py
===============================================================================

Class:
    ActivityAggregator

Responsibilities:
    - refresh(): audit log -> compactación -> ActivityCache por fecha UTC ->
      merge de persistencia -> escritura de ambas estructuras.
      Cualquier falla se convierte en {success: false, message}; el estado
      previamente commiteado queda intacto.
    - Lecturas (una sola pasada lineal sobre los eventos cacheados):
        * get_activity_summary()
        * get_asset_activity(type, id)
        * get_user_activity(name)
        * get_asset_activity_counts(type, ids) / get_user_activity_counts(names)
    - Fallback a ActivityPersistence para fechas fuera de la ventana rodante.

Collaborators:
    - application.cache_service.CacheService
    - domain.services.AuditLogReaderPort / UserGroupsPort
    - application.event_compactor.EventCompactor
    - application.persistence_merger.PersistenceMerger
    - application.schemas.ActivityRefreshRequest

Máquina de estados de un refresh:
    IDLE -> FETCHING -> COMPACTING -> CACHE_BUILT -> PERSISTENCE_MERGED
         -> PERSISTED -> IDLE
    Cualquier falla vuelve directo a IDLE. Si la escritura del cache falla
    después de escribir la persistencia, la persistencia previa se restaura
    (o se borra si no existía) antes de reportar el error.
===============================================================================
"""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from ..context import bind_context
from ..crosscutting.config import MAX_LOOKBACK_DAYS_LIMIT
from ..crosscutting.exceptions import ValidationError
from ..crosscutting.logger import logger
from ..domain.activity import (
    ANALYSES,
    DASHBOARDS,
    USERS,
    ActivityCache,
    ActivityPersistence,
    ActivityRefreshResult,
    ActivitySummary,
    AssetActivity,
    AssetActivityCounts,
    AssetTypeSummary,
    MinimalEvent,
    UserActivity,
    UserActivityCounts,
    UserAssetActivity,
    UserSummary,
    ViewerActivity,
)
from ..domain.assets import AssetType
from ..domain.services import AuditLogReaderPort, UserGroupsPort
from .cache_service import CacheService
from .event_compactor import (
    TRACKED_ASSET_TYPES,
    EventCompactor,
    all_tracked_events,
    asset_type_for_event,
    events_for,
)
from .persistence_merger import PersistenceMerger
from .schemas import (
    SELECTOR_ANALYSIS,
    SELECTOR_DASHBOARD,
    SELECTOR_USER,
    ActivityRefreshRequest,
    parse_refresh_request,
)

_KIND_BY_ASSET_TYPE = {
    AssetType.DASHBOARD: DASHBOARDS,
    AssetType.ANALYSIS: ANALYSES,
}


class RefreshStage(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COMPACTING = "compacting"
    CACHE_BUILT = "cache_built"
    PERSISTENCE_MERGED = "persistence_merged"
    PERSISTED = "persisted"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _tracked_type(asset_type: AssetType | str) -> AssetType:
    try:
        resolved = AssetType(asset_type)
    except ValueError as exc:
        raise ValidationError(f"asset type desconocido: {asset_type!r}") from exc
    if resolved not in TRACKED_ASSET_TYPES:
        raise ValidationError(
            f"asset type sin actividad registrada: {resolved.value!r}"
        )
    return resolved


class ActivityAggregator:
    def __init__(
        self,
        *,
        cache_service: CacheService,
        audit_reader: AuditLogReaderPort,
        compactor: Optional[EventCompactor] = None,
        merger: Optional[PersistenceMerger] = None,
        user_groups: Optional[UserGroupsPort] = None,
        max_lookback_days: int = MAX_LOOKBACK_DAYS_LIMIT,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        if max_lookback_days <= 0:
            raise ValueError("max_lookback_days must be > 0")

        self._cache = cache_service
        self._reader = audit_reader
        self._compactor = compactor or EventCompactor()
        self._merger = merger or PersistenceMerger()
        self._user_groups = user_groups
        self._max_lookback_days = int(max_lookback_days)
        self._now = now

        self._stage = RefreshStage.IDLE
        self._stage_history: List[RefreshStage] = []
        # Serializa "leer persistencia -> merge -> escribir" entre refreshes.
        self._commit_lock = threading.Lock()

    @property
    def stage(self) -> RefreshStage:
        return self._stage

    @property
    def stage_history(self) -> List[RefreshStage]:
        """Transiciones del último refresh (útil para diagnóstico)."""
        return list(self._stage_history)

    # =========================================================================
    # Refresh
    # =========================================================================

    def effective_days(self, days: Optional[int]) -> int:
        return min(days or self._max_lookback_days, self._max_lookback_days)

    def refresh(
        self, request: ActivityRefreshRequest | Mapping[str, Any]
    ) -> ActivityRefreshResult:
        """
        Raises:
            ValidationError: request inválido (antes de cualquier I/O).
        """
        parsed = parse_refresh_request(request)
        days = self.effective_days(parsed.days)
        self._stage_history = []

        with bind_context("activity.refresh"):
            logger.info(
                "Starting activity refresh",
                extra={"asset_types": list(parsed.asset_types), "days": days},
            )
            try:
                self._transition(RefreshStage.FETCHING)
                end = self._now()
                start = end - timedelta(days=days)
                raw_by_event = {
                    name: self._reader.get_events_by_name(name, start, end)
                    for name in self._event_names_for(parsed)
                }

                self._transition(RefreshStage.COMPACTING)
                events: List[MinimalEvent] = []
                for name, raw_events in raw_by_event.items():
                    events.extend(self._compactor.compact_all(raw_events, name))

                cache = self._build_cache(events, start, end)
                self._transition(RefreshStage.CACHE_BUILT)

                with self._commit_lock:
                    previous = self._cache.get_activity_persistence()
                    persistence = self._merger.merge(cache, previous)
                    self._transition(RefreshStage.PERSISTENCE_MERGED)
                    self._commit(cache, persistence, previous)
                self._transition(RefreshStage.PERSISTED)

                refreshed, total = self._count_refreshed(cache, parsed)
                logger.info(
                    "Activity refresh completed",
                    extra={
                        "events": cache.event_count,
                        "refreshed": refreshed,
                        "window_start": cache.start,
                        "window_end": cache.end,
                    },
                )
                return ActivityRefreshResult(
                    success=True,
                    message=f"Successfully refreshed activity data for {total} items",
                    refreshed=refreshed,
                )
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Error refreshing activity",
                    exc_info=True,
                    extra={"failed_stage": self._stage.value},
                )
                return ActivityRefreshResult(
                    success=False,
                    message=f"Error refreshing activity: {exc}",
                    refreshed={},
                )
            finally:
                self._transition(RefreshStage.IDLE)

    # =========================================================================
    # Lecturas
    # =========================================================================

    def get_activity_summary(self) -> ActivitySummary:
        cache = self._cache.get_activity_cache()
        if cache is None:
            return ActivitySummary()

        viewers_by_asset: Dict[AssetType, Dict[str, Set[str]]] = {
            t: defaultdict(set) for t in TRACKED_ASSET_TYPES
        }
        views: Dict[AssetType, int] = {t: 0 for t in TRACKED_ASSET_TYPES}
        user_counts: Dict[str, int] = defaultdict(int)

        for _, event in cache.iter_events():
            user_counts[event.u] += 1
            asset_type = asset_type_for_event(event.e)
            if asset_type is not None and event.r:
                views[asset_type] += 1
                viewers_by_asset[asset_type][event.r].add(event.u)

        def type_summary(asset_type: AssetType) -> AssetTypeSummary:
            per_asset = viewers_by_asset[asset_type]
            all_viewers: Set[str] = set().union(*per_asset.values()) if per_asset else set()
            return AssetTypeSummary(
                total_views=views[asset_type],
                unique_viewers=len(all_viewers),
                active_assets=len(per_asset),
            )

        return ActivitySummary(
            dashboards=type_summary(AssetType.DASHBOARD),
            analyses=type_summary(AssetType.ANALYSIS),
            users=UserSummary(
                active_users=len(user_counts),
                total_activities=sum(user_counts.values()),
            ),
        )

    def get_asset_activity(
        self, asset_type: AssetType | str, asset_id: str
    ) -> Optional[AssetActivity]:
        resolved = _tracked_type(asset_type)
        cache = self._cache.get_activity_cache()
        persistence = self._cache.get_activity_persistence()

        relevant = set(events_for(resolved))
        viewers: Dict[str, List[Any]] = {}
        views_by_date: Dict[str, int] = defaultdict(int)
        total_views = 0
        last_viewed = ""

        if cache is not None:
            for date_key, event in cache.iter_events():
                if event.e not in relevant or event.r != asset_id:
                    continue
                total_views += 1
                views_by_date[date_key] += 1
                stats = viewers.setdefault(event.u, [0, ""])
                stats[0] += 1
                if event.t > stats[1]:
                    stats[1] = event.t
                if event.t > last_viewed:
                    last_viewed = event.t

        last_viewed = last_viewed or _persisted_date(
            persistence, _KIND_BY_ASSET_TYPE[resolved], asset_id
        )
        if not last_viewed:
            return None

        groups = self._groups_for(viewers)
        viewer_rows = sorted(
            (
                ViewerActivity(
                    user_name=user,
                    view_count=count,
                    last_viewed=seen,
                    groups=groups.get(user, []),
                )
                for user, (count, seen) in viewers.items()
            ),
            key=lambda v: v.view_count,
            reverse=True,
        )

        return AssetActivity(
            asset_id=asset_id,
            asset_type=resolved.value,
            asset_name=self._asset_names(resolved).get(asset_id),
            total_views=total_views,
            unique_viewers=len(viewers),
            last_viewed=last_viewed,
            views_by_date=dict(views_by_date),
            viewers=viewer_rows,
        )

    def get_user_activity(self, user_name: str) -> Optional[UserActivity]:
        cache = self._cache.get_activity_cache()
        persistence = self._cache.get_activity_persistence()

        per_type: Dict[AssetType, Dict[str, List[Any]]] = {
            t: {} for t in TRACKED_ASSET_TYPES
        }
        activities_by_date: Dict[str, int] = defaultdict(int)
        total = 0
        last_active = ""

        if cache is not None:
            for date_key, event in cache.iter_events():
                if event.u != user_name:
                    continue
                total += 1
                activities_by_date[date_key] += 1
                if event.t > last_active:
                    last_active = event.t
                asset_type = asset_type_for_event(event.e)
                if asset_type is not None and event.r:
                    stats = per_type[asset_type].setdefault(event.r, [0, ""])
                    stats[0] += 1
                    if event.t > stats[1]:
                        stats[1] = event.t

        last_active = last_active or _persisted_date(persistence, USERS, user_name)
        if not last_active:
            return None

        def rows(asset_type: AssetType) -> List[UserAssetActivity]:
            names = self._asset_names(asset_type) if per_type[asset_type] else {}
            return sorted(
                (
                    UserAssetActivity(
                        asset_type=asset_type.value,
                        asset_id=asset_id,
                        asset_name=names.get(asset_id),
                        view_count=count,
                        last_viewed=seen,
                    )
                    for asset_id, (count, seen) in per_type[asset_type].items()
                ),
                key=lambda row: row.view_count,
                reverse=True,
            )

        return UserActivity(
            user_name=user_name,
            last_active=last_active,
            total_activities=total,
            activities_by_date=dict(activities_by_date),
            dashboards=rows(AssetType.DASHBOARD),
            analyses=rows(AssetType.ANALYSIS),
        )

    def get_asset_activity_counts(
        self, asset_type: AssetType | str, asset_ids: Iterable[str]
    ) -> Dict[str, AssetActivityCounts]:
        """Una sola pasada O(eventos); lookup por set, independiente de len(ids)."""
        resolved = _tracked_type(asset_type)
        results = {asset_id: AssetActivityCounts() for asset_id in asset_ids}
        if not results:
            return results

        cache = self._cache.get_activity_cache()
        persistence = self._cache.get_activity_persistence()

        if cache is not None:
            relevant = set(events_for(resolved))
            viewers: Dict[str, Set[str]] = defaultdict(set)
            for _, event in cache.iter_events():
                if event.e not in relevant or event.r not in results:
                    continue
                current = results[event.r]
                current.total_views += 1
                if event.t > current.last_viewed:
                    current.last_viewed = event.t
                viewers[event.r].add(event.u)
            for asset_id, users in viewers.items():
                results[asset_id].unique_viewers = len(users)

        kind = _KIND_BY_ASSET_TYPE[resolved]
        for asset_id, current in results.items():
            if not current.last_viewed:
                current.last_viewed = _persisted_date(persistence, kind, asset_id)
        return results

    def get_user_activity_counts(
        self, user_names: Iterable[str]
    ) -> Dict[str, UserActivityCounts]:
        """Una sola pasada O(eventos) sobre el cache."""
        results = {name: UserActivityCounts() for name in user_names}
        if not results:
            return results

        cache = self._cache.get_activity_cache()
        persistence = self._cache.get_activity_persistence()

        if cache is None:
            logger.debug("No activity cache found for user activity counts")
        else:
            assets: Dict[AssetType, Dict[str, Set[str]]] = {
                t: defaultdict(set) for t in TRACKED_ASSET_TYPES
            }
            for _, event in cache.iter_events():
                current = results.get(event.u)
                if current is None:
                    continue
                current.total_activities += 1
                if event.t > current.last_active:
                    current.last_active = event.t
                asset_type = asset_type_for_event(event.e)
                if asset_type is not None and event.r:
                    assets[asset_type][event.u].add(event.r)
            for name, current in results.items():
                current.dashboard_count = len(assets[AssetType.DASHBOARD].get(name, ()))
                current.analysis_count = len(assets[AssetType.ANALYSIS].get(name, ()))

        for name, current in results.items():
            if not current.last_active:
                current.last_active = _persisted_date(persistence, USERS, name)
        return results

    # =========================================================================
    # Helpers privados
    # =========================================================================

    def _commit(
        self,
        cache: ActivityCache,
        persistence: ActivityPersistence,
        previous: Optional[ActivityPersistence],
    ) -> None:
        """
        Escribe persistencia y cache como una unidad: si falla la escritura
        del cache, la persistencia vuelve a `previous` antes de propagar.
        """
        self._cache.put_activity_persistence(persistence)
        try:
            self._cache.put_activity_cache(cache)
        except Exception:
            try:
                self._cache.restore_activity_persistence(previous)
            except Exception:  # noqa: BLE001
                logger.error(
                    "Could not restore activity persistence after failed commit",
                    exc_info=True,
                )
            raise

    def _transition(self, stage: RefreshStage) -> None:
        self._stage = stage
        self._stage_history.append(stage)

    @staticmethod
    def _event_names_for(request: ActivityRefreshRequest) -> List[str]:
        names: List[str] = []
        if request.wants(SELECTOR_USER):
            # La actividad de usuarios abarca todos los eventos trackeados.
            names.extend(all_tracked_events())
        if request.wants(SELECTOR_DASHBOARD):
            names.extend(events_for(AssetType.DASHBOARD))
        if request.wants(SELECTOR_ANALYSIS):
            names.extend(events_for(AssetType.ANALYSIS))
        return list(dict.fromkeys(names))

    def _build_cache(
        self, events: List[MinimalEvent], start: datetime, end: datetime
    ) -> ActivityCache:
        by_date: Dict[str, List[MinimalEvent]] = {}
        for event in events:
            by_date.setdefault(event.date_key, []).append(event)
        return ActivityCache(
            last_updated=self._now().isoformat(),
            start=start.isoformat(),
            end=end.isoformat(),
            events=by_date,
        )

    @staticmethod
    def _count_refreshed(
        cache: ActivityCache, request: ActivityRefreshRequest
    ) -> tuple[Dict[str, int], int]:
        ids: Dict[str, Set[str]] = {DASHBOARDS: set(), ANALYSES: set(), USERS: set()}
        for _, event in cache.iter_events():
            asset_type = asset_type_for_event(event.e)
            if asset_type is not None and event.r:
                ids[_KIND_BY_ASSET_TYPE[asset_type]].add(event.r)
            ids[USERS].add(event.u)

        refreshed: Dict[str, int] = {}
        if request.wants(SELECTOR_DASHBOARD):
            refreshed[DASHBOARDS] = len(ids[DASHBOARDS])
        if request.wants(SELECTOR_ANALYSIS):
            refreshed[ANALYSES] = len(ids[ANALYSES])
        if request.wants(SELECTOR_USER):
            refreshed[USERS] = len(ids[USERS])
        return refreshed, sum(len(v) for v in ids.values())

    def _asset_names(self, asset_type: AssetType) -> Dict[str, str]:
        try:
            return {
                e.asset_id: e.asset_name
                for e in self._cache.get_cache_entries(asset_type)
            }
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "Failed to get asset names from cache",
                extra={"asset_type": asset_type.value, "error": str(exc)},
            )
            return {}

    def _groups_for(self, viewers: Iterable[str]) -> Dict[str, List[str]]:
        if self._user_groups is None:
            return {}
        groups: Dict[str, List[str]] = {}
        for user in viewers:
            try:
                groups[user] = list(self._user_groups.get_user_groups(user))
            except Exception as exc:  # noqa: BLE001
                logger.debug(
                    "Failed to resolve user groups",
                    extra={"user": user, "error": str(exc)},
                )
                groups[user] = []
        return groups


def _persisted_date(
    persistence: Optional[ActivityPersistence], kind: str, key: str
) -> str:
    if persistence is None:
        return ""
    return persistence.dates_for(kind).get(key, "")
