"""
===============================================================================
TARJETA CRC — domain/assets.py
===============================================================================

Módulo:
    Modelos del índice maestro de assets (Dominio)

Responsabilidades:
    - Definir los tipos de asset (singular + plural) y su forma de storage.
    - Definir CacheEntry (una fila del índice) y MasterCache (índice completo).
    - Serializar a/desde el JSON camelCase que vive en el durable store.

Colaboradores:
    - application.cache_service: construye MasterCache en rebuild_cache().
    - infrastructure.assets: entrega raw records que CacheEntry.from_source() interpreta.

Notas:
    - Unicidad: (asset_type, asset_id).
    - Los assets se archivan, nunca se borran (status=archived).
    - Fechas como strings ISO-8601 UTC (se comparan lexicográficamente).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional


class AssetType(str, Enum):
    DASHBOARD = "dashboard"
    ANALYSIS = "analysis"
    DATASET = "dataset"
    DATASOURCE = "datasource"
    FOLDER = "folder"
    USER = "user"
    GROUP = "group"

    @property
    def plural(self) -> str:
        return _PLURALS[self]

    @property
    def is_collection(self) -> bool:
        """Users, groups y folders se exportan como un único archivo por tipo."""
        return self in _COLLECTION_TYPES


_PLURALS = {
    AssetType.DASHBOARD: "dashboards",
    AssetType.ANALYSIS: "analyses",
    AssetType.DATASET: "datasets",
    AssetType.DATASOURCE: "datasources",
    AssetType.FOLDER: "folders",
    AssetType.USER: "users",
    AssetType.GROUP: "groups",
}

_COLLECTION_TYPES = frozenset({AssetType.USER, AssetType.GROUP, AssetType.FOLDER})


class AssetStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class StatusFilter(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    ALL = "all"

    def matches(self, status: AssetStatus) -> bool:
        return self is StatusFilter.ALL or self.value == status.value


class StorageType(str, Enum):
    INDIVIDUAL = "individual"
    COLLECTION = "collection"


def export_file_path(
    asset_type: AssetType, asset_id: str, status: AssetStatus
) -> str:
    """Ruta del export en el bucket: assets|archived/<plural>/<id>.json o .../organization/<plural>.json."""
    root = "archived" if status is AssetStatus.ARCHIVED else "assets"
    if asset_type.is_collection:
        return f"{root}/organization/{asset_type.plural}.json"
    return f"{root}/{asset_type.plural}/{asset_id}.json"


@dataclass(slots=True)
class CacheEntry:
    """Una fila del índice maestro."""

    asset_id: str
    asset_type: AssetType
    asset_name: str
    arn: str = ""
    status: AssetStatus = AssetStatus.ACTIVE
    created_time: Optional[str] = None
    last_updated_time: Optional[str] = None
    exported_at: Optional[str] = None
    enrichment_status: str = "skeleton"
    tags: List[Dict[str, str]] = field(default_factory=list)
    permissions: List[Any] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    storage_type: StorageType = StorageType.INDIVIDUAL
    export_file_path: str = ""

    @property
    def key(self) -> tuple[AssetType, str]:
        return (self.asset_type, self.asset_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assetId": self.asset_id,
            "assetType": self.asset_type.value,
            "assetName": self.asset_name,
            "arn": self.arn,
            "status": self.status.value,
            "createdTime": self.created_time,
            "lastUpdatedTime": self.last_updated_time,
            "exportedAt": self.exported_at,
            "enrichmentStatus": self.enrichment_status,
            "tags": [dict(t) for t in self.tags],
            "permissions": list(self.permissions),
            "metadata": dict(self.metadata),
            "storageType": self.storage_type.value,
            "exportFilePath": self.export_file_path,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        asset_type = AssetType(data["assetType"])
        return cls(
            asset_id=str(data["assetId"]),
            asset_type=asset_type,
            asset_name=str(data.get("assetName") or ""),
            arn=str(data.get("arn") or ""),
            status=AssetStatus(data.get("status") or AssetStatus.ACTIVE.value),
            created_time=data.get("createdTime"),
            last_updated_time=data.get("lastUpdatedTime"),
            exported_at=data.get("exportedAt"),
            enrichment_status=str(data.get("enrichmentStatus") or "skeleton"),
            tags=_normalize_tags(data.get("tags")),
            permissions=list(data.get("permissions") or []),
            metadata=dict(data.get("metadata") or {}),
            storage_type=StorageType(
                data.get("storageType")
                or (
                    StorageType.COLLECTION.value
                    if asset_type.is_collection
                    else StorageType.INDIVIDUAL.value
                )
            ),
            export_file_path=str(data.get("exportFilePath") or ""),
        )

    @classmethod
    def from_source(
        cls, asset_type: AssetType, record: Mapping[str, Any]
    ) -> "CacheEntry":
        """
        Construye una entrada desde un raw record del asset source.

        Acepta `assetId` o `<type>Id` (ej: dashboardId, userName para users).

        Raises:
            ValueError: si el record no tiene id.
        """
        asset_id = (
            record.get("assetId")
            or record.get(f"{asset_type.value}Id")
            or record.get("id")
            or (record.get("userName") if asset_type is AssetType.USER else None)
            or (record.get("groupName") if asset_type is AssetType.GROUP else None)
        )
        if not asset_id:
            raise ValueError(f"asset record sin id (type={asset_type.value})")

        status = AssetStatus(record.get("status") or AssetStatus.ACTIVE.value)
        name = (
            record.get("assetName")
            or record.get("name")
            or record.get("userName")
            or record.get("groupName")
            or str(asset_id)
        )
        return cls(
            asset_id=str(asset_id),
            asset_type=asset_type,
            asset_name=str(name),
            arn=str(record.get("arn") or record.get("Arn") or ""),
            status=status,
            created_time=record.get("createdTime"),
            last_updated_time=record.get("lastUpdatedTime"),
            exported_at=record.get("exportedAt"),
            enrichment_status=str(record.get("enrichmentStatus") or "skeleton"),
            tags=_normalize_tags(record.get("tags")),
            permissions=list(record.get("permissions") or []),
            metadata=dict(record.get("metadata") or {}),
            storage_type=(
                StorageType.COLLECTION
                if asset_type.is_collection
                else StorageType.INDIVIDUAL
            ),
            export_file_path=str(
                record.get("exportFilePath")
                or export_file_path(asset_type, str(asset_id), status)
            ),
        )


def _normalize_tags(raw: Any) -> List[Dict[str, str]]:
    tags: List[Dict[str, str]] = []
    for tag in raw or []:
        if not isinstance(tag, Mapping):
            continue
        key = tag.get("key", tag.get("Key"))
        if key is None:
            continue
        tags.append({"key": str(key), "value": str(tag.get("value", tag.get("Value", "")))})
    return tags


@dataclass(slots=True)
class MasterCache:
    """Índice completo de assets: tipo -> lista ordenada de entradas."""

    last_updated: str
    entries: Dict[AssetType, List[CacheEntry]] = field(default_factory=dict)
    version: str = "1.0"

    def entries_for(self, asset_type: AssetType) -> List[CacheEntry]:
        return list(self.entries.get(asset_type, []))

    def asset_counts(self) -> Dict[str, int]:
        return {t.value: len(self.entries.get(t, [])) for t in AssetType}

    def filter_by_status(self, status: StatusFilter) -> "MasterCache":
        """Devuelve una copia filtrada; el índice original no se toca."""
        return MasterCache(
            last_updated=self.last_updated,
            version=self.version,
            entries={
                t: [e for e in items if status.matches(e.status)]
                for t, items in self.entries.items()
            },
        )

    def find(self, asset_type: AssetType, asset_id: str) -> Optional[CacheEntry]:
        for entry in self.entries.get(asset_type, []):
            if entry.asset_id == asset_id:
                return entry
        return None

    def iter_entries(self) -> Iterable[CacheEntry]:
        for t in AssetType:
            yield from self.entries.get(t, [])

    def metadata_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "assetCounts": self.asset_counts(),
        }
