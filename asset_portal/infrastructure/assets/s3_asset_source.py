"""
===============================================================================
CRC CARD — infrastructure/assets/s3_asset_source.py
===============================================================================

Clase:
  S3ExportedAssetSource (Adapter)

Responsabilidades:
  - Implementar AssetSourcePort leyendo los exports que deja el job de export
    en el mismo bucket del durable store:
      * individuales:  assets/<plural>/<id>.json  y  archived/<plural>/<id>.json
      * colecciones:   assets/organization/<plural>.json (mapa id -> record)
                       archived/organization/<plural>.json
  - Aplanar el export (apiResponses.list.data, tags, permissions) a un record
    camelCase que CacheEntry.from_source() entiende.
  - Marcar cada record con status (active/archived) y exportFilePath.

Colaboradores:
  - infrastructure.storage.S3DurableStore (get / list_keys con retry + mapeo de errores)
  - domain.assets.AssetType
===============================================================================
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterator, Mapping, Optional

from ...crosscutting.logger import logger
from ...domain.assets import AssetStatus, AssetType, export_file_path
from ..storage.s3_durable_store import S3DurableStore

_STATUS_ROOTS = {
    AssetStatus.ACTIVE: "assets",
    AssetStatus.ARCHIVED: "archived",
}


class S3ExportedAssetSource:
    """Listado de assets exportados (activos y archivados) por tipo."""

    def __init__(self, store: S3DurableStore) -> None:
        self._store = store

    def list_assets(self, asset_type: AssetType) -> Iterator[Dict[str, Any]]:
        for status in (AssetStatus.ACTIVE, AssetStatus.ARCHIVED):
            if asset_type.is_collection:
                yield from self._read_collection(asset_type, status)
            else:
                yield from self._read_individuals(asset_type, status)

    # =========================================================================
    # Helpers privados
    # =========================================================================

    def _read_collection(
        self, asset_type: AssetType, status: AssetStatus
    ) -> Iterator[Dict[str, Any]]:
        key = export_file_path(asset_type, "", status)
        data = self._load_json(key)
        if not isinstance(data, Mapping):
            return

        for asset_key, raw in data.items():
            if not isinstance(raw, Mapping):
                continue
            yield _flatten_export(asset_type, str(asset_key), raw, status, key)

    def _read_individuals(
        self, asset_type: AssetType, status: AssetStatus
    ) -> Iterator[Dict[str, Any]]:
        prefix = f"{_STATUS_ROOTS[status]}/{asset_type.plural}/"
        keys = self._store.list_keys(prefix)
        logger.debug(
            "Listed exported assets",
            extra={
                "asset_type": asset_type.value,
                "status": status.value,
                "count": len(keys),
            },
        )

        for key in keys:
            if not key.endswith(".json"):
                continue
            data = self._load_json(key)
            if not isinstance(data, Mapping):
                continue
            asset_key = key[len(prefix) : -len(".json")]
            yield _flatten_export(asset_type, asset_key, data, status, key)

    def _load_json(self, key: str) -> Optional[Any]:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            logger.warning("Skipping unparsable asset export", extra={"key": key})
            return None


def _flatten_export(
    asset_type: AssetType,
    asset_key: str,
    data: Mapping[str, Any],
    status: AssetStatus,
    path: str,
) -> Dict[str, Any]:
    """
    Exports nuevos traen `apiResponses.{list,tags,permissions}` en PascalCase;
    exports ya aplanados se devuelven casi tal cual.
    """
    api = data.get("apiResponses") or {}
    summary = _section_data(api, "list") or {}
    if not isinstance(summary, Mapping):
        summary = {}

    type_id_key = f"{asset_type.value[0].upper()}{asset_type.value[1:]}Id"
    record: Dict[str, Any] = dict(data) if not api else {}
    record.setdefault(
        "assetId",
        data.get("assetId")
        or summary.get(type_id_key)
        or summary.get("Id")
        or asset_key,
    )
    record.setdefault(
        "assetName",
        data.get("assetName")
        or summary.get("Name")
        or summary.get("UserName")
        or summary.get("GroupName")
        or record["assetId"],
    )
    record.setdefault("arn", data.get("arn") or summary.get("Arn") or "")
    record.setdefault("createdTime", _iso(summary.get("CreatedTime")))
    record.setdefault("lastUpdatedTime", _iso(summary.get("LastUpdatedTime")))
    if api:
        record["exportedAt"] = _iso((api.get("list") or {}).get("timestamp"))
        record["tags"] = _section_data(api, "tags") or []
        record["permissions"] = _section_data(api, "permissions") or []
        record["metadata"] = {
            k: v
            for k, v in summary.items()
            if isinstance(v, (str, int, float, bool))
        }
    record["status"] = status.value
    record["exportFilePath"] = path
    return record


def _section_data(api: Mapping[str, Any], name: str) -> Any:
    section = api.get(name)
    if isinstance(section, Mapping):
        return section.get("data")
    return None


def _iso(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)

