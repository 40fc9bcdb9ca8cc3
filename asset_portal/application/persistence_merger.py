"""
===============================================================================
TARJETA CRC — application/persistence_merger.py
===============================================================================

Class:
    PersistenceMerger

Responsibilities:
    - Mantener la última fecha vista por dashboard / analysis / usuario más allá
      de la ventana rodante del ActivityCache.
    - Actualizar una fecha SOLO si el evento es estrictamente posterior
      (las fechas nunca retroceden entre refreshes).
    - Servicio puro: no escribe; ActivityAggregator persiste el resultado.

Collaborators:
    - domain.activity.ActivityCache / ActivityPersistence
    - application.event_compactor (event name -> asset type)

Notas:
    - Timestamps en formato fijo UTC: comparar strings ISO == comparar fechas.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from ..domain.activity import (
    ANALYSES,
    DASHBOARDS,
    ActivityCache,
    ActivityPersistence,
)
from ..domain.assets import AssetType
from .event_compactor import asset_type_for_event

_KIND_BY_ASSET_TYPE = {
    AssetType.DASHBOARD: DASHBOARDS,
    AssetType.ANALYSIS: ANALYSES,
}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PersistenceMerger:
    """Fold monotónico de eventos sobre ActivityPersistence."""

    def __init__(self, clock: Callable[[], str] = _utc_now_iso) -> None:
        self._clock = clock

    def merge(
        self,
        activity_cache: ActivityCache,
        existing: Optional[ActivityPersistence],
    ) -> ActivityPersistence:
        """
        Devuelve una persistencia nueva; `existing` no se modifica.
        """
        updated = (
            existing.copy()
            if existing is not None
            else ActivityPersistence(last_updated="")
        )

        for _, event in activity_cache.iter_events():
            asset_type = asset_type_for_event(event.e)
            kind = _KIND_BY_ASSET_TYPE.get(asset_type) if asset_type else None
            if kind and event.r:
                _keep_latest(updated.dates_for(kind), event.r, event.t)
            if event.u:
                _keep_latest(updated.users, event.u, event.t)

        updated.last_updated = self._clock()
        return updated


def _keep_latest(dates: dict[str, str], key: str, timestamp: str) -> None:
    current = dates.get(key)
    if current is None or timestamp > current:
        dates[key] = timestamp
