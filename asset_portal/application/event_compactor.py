"""
===============================================================================
TARJETA CRC — application/event_compactor.py
===============================================================================

Class:
    EventCompactor

Responsibilities:
    - Convertir un raw record del audit log en un MinimalEvent {t, e, u, r}
      o descartarlo (None).
    - Descartar eventos que no vienen del servicio auditado.
    - Resolver el actor (federado / userName / ARN / "Unknown").
    - Resolver el resource id con una tabla declarativa de paths por tipo.
    - Servicio puro (sin IO): fácil de testear.

Collaborators:
    - domain.activity.MinimalEvent
    - ActivityAggregator: consumidor (compact_all por event name)

Notas:
    - Agregar un tipo de asset es agregar una fila a ASSET_EVENT_CONFIG.
    - Records mal formados levantan MalformedEventError en compact();
      compact_all() los loguea y sigue con el batch.
===============================================================================
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Final, Iterable, Mapping, Optional

from ..crosscutting.exceptions import MalformedEventError
from ..crosscutting.logger import logger
from ..domain.activity import MinimalEvent
from ..domain.assets import AssetType

UNKNOWN_ACTOR: Final[str] = "Unknown"
DEFAULT_EVENT_SOURCE: Final[str] = "quicksight.amazonaws.com"

Extractor = Callable[[Mapping[str, Any]], Any]


def _path(*segments: str) -> Extractor:
    """Extractor que navega dicts anidados; None si algún tramo falta."""

    def extract(payload: Mapping[str, Any]) -> Any:
        node: Any = payload
        for segment in segments:
            if not isinstance(node, Mapping):
                return None
            node = node.get(segment)
        return node

    extract.__name__ = "path:" + ".".join(segments)
    return extract


def _id_paths(field: str) -> tuple[Extractor, ...]:
    """Paths históricos del id, en orden de prioridad (ambos casings)."""
    pascal = field[0].upper() + field[1:]
    return (
        _path("requestParameters", field),
        _path("serviceEventDetails", "eventRequestDetails", field),
        _path("serviceEventDetails", field),
        _path("serviceEventDetails", "eventRequestDetails", pascal),
        _path("requestParameters", pascal),
    )


@dataclass(frozen=True)
class EventTypeConfig:
    events: tuple[str, ...]
    extractors: tuple[Extractor, ...]


ASSET_EVENT_CONFIG: Final[dict[AssetType, EventTypeConfig]] = {
    AssetType.DASHBOARD: EventTypeConfig(
        events=("GetDashboard", "GetDashboardEmbedUrl"),
        extractors=_id_paths("dashboardId"),
    ),
    AssetType.ANALYSIS: EventTypeConfig(
        events=("GetAnalysis",),
        extractors=_id_paths("analysisId"),
    ),
}

TRACKED_ASSET_TYPES: Final[tuple[AssetType, ...]] = tuple(ASSET_EVENT_CONFIG)

_ASSET_TYPE_BY_EVENT: Final[dict[str, AssetType]] = {
    event: asset_type
    for asset_type, config in ASSET_EVENT_CONFIG.items()
    for event in config.events
}


def asset_type_for_event(event_name: str) -> Optional[AssetType]:
    return _ASSET_TYPE_BY_EVENT.get(event_name)


def events_for(asset_type: AssetType) -> tuple[str, ...]:
    config = ASSET_EVENT_CONFIG.get(asset_type)
    return config.events if config else ()


def all_tracked_events() -> tuple[str, ...]:
    return tuple(_ASSET_TYPE_BY_EVENT)


def normalize_timestamp(value: Any) -> Optional[str]:
    """
    Normaliza a UTC fijo `YYYY-MM-DDTHH:MM:SSZ` (orden lexicográfico == temporal).

    Raises:
        ValueError: si el string no es ISO-8601.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class EventCompactor:
    """
    Compacta raw records del audit log.

    Uso:
        compactor = EventCompactor()
        events = compactor.compact_all(raw_records, "GetDashboard")
    """

    __slots__ = ("_event_source",)

    def __init__(self, event_source: str = DEFAULT_EVENT_SOURCE) -> None:
        self._event_source = event_source

    def compact(
        self, raw_event: Mapping[str, Any], event_name: str
    ) -> Optional[MinimalEvent]:
        """
        Returns:
            MinimalEvent, o None si el evento se descarta (otro servicio,
            sin timestamp o sin resource id resoluble).

        Raises:
            MalformedEventError: si el record no se puede interpretar.
        """
        try:
            payload = self._payload(raw_event)

            if payload.get("eventSource") != self._event_source:
                return None

            timestamp = normalize_timestamp(
                payload.get("eventTime") or raw_event.get("EventTime")
            )
            resource_id = self._resolve_resource_id(payload, event_name)
            if not timestamp or not resource_id:
                return None

            return MinimalEvent(
                t=timestamp,
                e=event_name,
                u=self._resolve_actor(payload) or UNKNOWN_ACTOR,
                r=resource_id,
            )
        except MalformedEventError:
            raise
        except (TypeError, ValueError, AttributeError) as exc:
            raise MalformedEventError(
                f"Raw record inválido para {event_name}: {exc}", original_error=exc
            ) from exc

    def compact_all(
        self, raw_events: Iterable[Mapping[str, Any]], event_name: str
    ) -> list[MinimalEvent]:
        compacted: list[MinimalEvent] = []
        dropped = 0
        malformed = 0

        for raw_event in raw_events:
            try:
                event = self.compact(raw_event, event_name)
            except MalformedEventError as exc:
                malformed += 1
                logger.debug(
                    "Skipping malformed audit record",
                    extra={"event_name": event_name, "error": exc.message},
                )
                continue
            if event is None:
                dropped += 1
                continue
            compacted.append(event)

        if dropped or malformed:
            logger.debug(
                "Compaction finished with discards",
                extra={
                    "event_name": event_name,
                    "kept": len(compacted),
                    "dropped": dropped,
                    "malformed": malformed,
                },
            )
        return compacted

    # ------------------------------------------------------------------

    @staticmethod
    def _payload(raw_event: Any) -> Mapping[str, Any]:
        if not isinstance(raw_event, Mapping):
            raise MalformedEventError(
                f"Raw record no es un objeto ({type(raw_event).__name__})"
            )

        embedded = raw_event.get("CloudTrailEvent")
        if isinstance(embedded, str):
            try:
                parsed = json.loads(embedded)
            except ValueError as exc:
                raise MalformedEventError(
                    "CloudTrailEvent no es JSON válido", original_error=exc
                ) from exc
            if not isinstance(parsed, Mapping):
                raise MalformedEventError("CloudTrailEvent no es un objeto JSON")
            return parsed

        return raw_event

    @staticmethod
    def _resolve_actor(payload: Mapping[str, Any]) -> Optional[str]:
        identity = payload.get("userIdentity")
        if not isinstance(identity, Mapping):
            return None

        # Identidad federada: "<issuer>/<session name>"
        issuer = _path("sessionContext", "sessionIssuer", "userName")(identity)
        principal = identity.get("principalId")
        if issuer and isinstance(principal, str) and ":" in principal:
            session_name = principal.rsplit(":", 1)[1]
            if session_name:
                return f"{issuer}/{session_name}"

        user_name = identity.get("userName")
        if user_name:
            return str(user_name)

        arn = identity.get("arn")
        if isinstance(arn, str) and arn:
            last = arn.rsplit("/", 1)[-1]
            if last:
                return last

        return None

    @staticmethod
    def _resolve_resource_id(
        payload: Mapping[str, Any], event_name: str
    ) -> Optional[str]:
        asset_type = asset_type_for_event(event_name)
        if asset_type is None:
            return None

        for extract in ASSET_EVENT_CONFIG[asset_type].extractors:
            value = extract(payload)
            if value:
                resource_id = str(value).rsplit("/", 1)[-1]
                return resource_id or None
        return None
