"""
===============================================================================
TARJETA CRC — domain/activity.py
===============================================================================

Módulo:
    Modelos de actividad (Dominio)

Responsabilidades:
    - MinimalEvent: encoding compacto de un evento del audit log {t, e, u, r}.
    - ActivityCache: ventana rodante de eventos agrupados por fecha UTC.
    - ActivityPersistence: últimas fechas vistas por asset/usuario (sin vencimiento).
    - Resultados de lectura (summary, detalle por asset/usuario, counts bulk).

Colaboradores:
    - application.event_compactor: produce MinimalEvent.
    - application.activity_aggregator: construye ActivityCache y resultados.
    - application.persistence_merger: actualiza ActivityPersistence.

Notas:
    - Los JSON persistidos llevan `version` para permitir evolución del schema.
    - ActivityPersistence conserva mapas desconocidos (extra) al re-serializar.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

ACTIVITY_CACHE_VERSION = "2.0"
ACTIVITY_PERSISTENCE_VERSION = "1.0"

# Claves de ActivityPersistence (también son las claves de `refreshed`).
DASHBOARDS = "dashboards"
ANALYSES = "analyses"
USERS = "users"


@dataclass(frozen=True, slots=True)
class MinimalEvent:
    """t=timestamp ISO, e=event name, u=actor id, r=resource id."""

    t: str
    e: str
    u: str
    r: Optional[str] = None

    @property
    def date_key(self) -> str:
        return self.t.split("T", 1)[0]

    def to_dict(self) -> Dict[str, str]:
        data = {"t": self.t, "e": self.e, "u": self.u}
        if self.r:
            data["r"] = self.r
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MinimalEvent":
        return cls(
            t=str(data["t"]),
            e=str(data["e"]),
            u=str(data.get("u") or ""),
            r=data.get("r") or None,
        )


@dataclass(slots=True)
class ActivityCache:
    last_updated: str
    start: str
    end: str
    events: Dict[str, List[MinimalEvent]] = field(default_factory=dict)
    version: str = ACTIVITY_CACHE_VERSION

    def iter_events(self) -> Iterator[Tuple[str, MinimalEvent]]:
        for date_key, events in self.events.items():
            for event in events:
                yield date_key, event

    @property
    def event_count(self) -> int:
        return sum(len(events) for events in self.events.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "dateRange": {"start": self.start, "end": self.end},
            "events": {
                date_key: [e.to_dict() for e in events]
                for date_key, events in self.events.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActivityCache":
        date_range = data.get("dateRange") or {}
        events: Dict[str, List[MinimalEvent]] = {}
        for date_key, raw_events in (data.get("events") or {}).items():
            events[str(date_key)] = [MinimalEvent.from_dict(e) for e in raw_events or []]
        return cls(
            version=str(data.get("version") or ACTIVITY_CACHE_VERSION),
            last_updated=str(data.get("lastUpdated") or ""),
            start=str(date_range.get("start") or ""),
            end=str(date_range.get("end") or ""),
            events=events,
        )


@dataclass(slots=True)
class ActivityPersistence:
    last_updated: str
    dashboards: Dict[str, str] = field(default_factory=dict)
    analyses: Dict[str, str] = field(default_factory=dict)
    users: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)
    version: str = ACTIVITY_PERSISTENCE_VERSION

    def dates_for(self, kind: str) -> Dict[str, str]:
        if kind == DASHBOARDS:
            return self.dashboards
        if kind == ANALYSES:
            return self.analyses
        if kind == USERS:
            return self.users
        raise KeyError(kind)

    def copy(self) -> "ActivityPersistence":
        return ActivityPersistence(
            version=self.version,
            last_updated=self.last_updated,
            dashboards=dict(self.dashboards),
            analyses=dict(self.analyses),
            users=dict(self.users),
            extra=dict(self.extra),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data.update(
            {
                "version": self.version,
                "lastUpdated": self.last_updated,
                DASHBOARDS: dict(self.dashboards),
                ANALYSES: dict(self.analyses),
                USERS: dict(self.users),
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActivityPersistence":
        known = {"version", "lastUpdated", DASHBOARDS, ANALYSES, USERS}
        return cls(
            version=str(data.get("version") or ACTIVITY_PERSISTENCE_VERSION),
            last_updated=str(data.get("lastUpdated") or ""),
            dashboards={str(k): str(v) for k, v in (data.get(DASHBOARDS) or {}).items()},
            analyses={str(k): str(v) for k, v in (data.get(ANALYSES) or {}).items()},
            users={str(k): str(v) for k, v in (data.get(USERS) or {}).items()},
            extra={k: v for k, v in data.items() if k not in known},
        )


# =============================================================================
# Resultados
# =============================================================================


@dataclass(slots=True)
class ActivityRefreshResult:
    success: bool
    message: str
    refreshed: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "refreshed": dict(self.refreshed),
        }


@dataclass(slots=True)
class AssetTypeSummary:
    total_views: int = 0
    unique_viewers: int = 0
    active_assets: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalViews": self.total_views,
            "uniqueViewers": self.unique_viewers,
            "activeAssets": self.active_assets,
        }


@dataclass(slots=True)
class UserSummary:
    active_users: int = 0
    total_activities: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "activeUsers": self.active_users,
            "totalActivities": self.total_activities,
        }


@dataclass(slots=True)
class ActivitySummary:
    dashboards: AssetTypeSummary = field(default_factory=AssetTypeSummary)
    analyses: AssetTypeSummary = field(default_factory=AssetTypeSummary)
    users: UserSummary = field(default_factory=UserSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            DASHBOARDS: self.dashboards.to_dict(),
            ANALYSES: self.analyses.to_dict(),
            USERS: self.users.to_dict(),
        }


@dataclass(slots=True)
class ViewerActivity:
    user_name: str
    view_count: int
    last_viewed: str
    groups: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userName": self.user_name,
            "viewCount": self.view_count,
            "lastViewed": self.last_viewed,
            "groups": list(self.groups),
        }


@dataclass(slots=True)
class AssetActivity:
    asset_id: str
    asset_type: str
    asset_name: Optional[str]
    total_views: int
    unique_viewers: int
    last_viewed: str
    views_by_date: Dict[str, int] = field(default_factory=dict)
    viewers: List[ViewerActivity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assetId": self.asset_id,
            "assetName": self.asset_name,
            "assetType": self.asset_type,
            "totalViews": self.total_views,
            "uniqueViewers": self.unique_viewers,
            "lastViewed": self.last_viewed,
            "viewsByDate": dict(self.views_by_date),
            "viewers": [v.to_dict() for v in self.viewers],
        }


@dataclass(slots=True)
class UserAssetActivity:
    asset_type: str
    asset_id: str
    asset_name: Optional[str]
    view_count: int
    last_viewed: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            f"{self.asset_type}Id": self.asset_id,
            f"{self.asset_type}Name": self.asset_name,
            "viewCount": self.view_count,
            "lastViewed": self.last_viewed,
        }


@dataclass(slots=True)
class UserActivity:
    user_name: str
    last_active: str
    total_activities: int
    activities_by_date: Dict[str, int] = field(default_factory=dict)
    dashboards: List[UserAssetActivity] = field(default_factory=list)
    analyses: List[UserAssetActivity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userName": self.user_name,
            "lastActive": self.last_active,
            "totalActivities": self.total_activities,
            "activitiesByDate": dict(self.activities_by_date),
            DASHBOARDS: [d.to_dict() for d in self.dashboards],
            ANALYSES: [a.to_dict() for a in self.analyses],
        }


@dataclass(slots=True)
class AssetActivityCounts:
    total_views: int = 0
    unique_viewers: int = 0
    last_viewed: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalViews": self.total_views,
            "uniqueViewers": self.unique_viewers,
            "lastViewed": self.last_viewed,
        }


@dataclass(slots=True)
class UserActivityCounts:
    total_activities: int = 0
    last_active: str = ""
    dashboard_count: int = 0
    analysis_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalActivities": self.total_activities,
            "lastActive": self.last_active,
            "dashboardCount": self.dashboard_count,
            "analysisCount": self.analysis_count,
        }
