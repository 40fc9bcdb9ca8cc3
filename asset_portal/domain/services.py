"""
===============================================================================
TARJETA CRC — domain/services.py
===============================================================================

Módulo:
    Puertos de colaboradores externos (Protocols)

Responsabilidades:
    - Definir contratos para durable store, audit log, listado de assets y grupos.
    - Proteger a application de detalles del proveedor (boto3, CloudTrail, S3).

Colaboradores:
    - infrastructure/*: implementaciones concretas.
    - application/*: consumen estos puertos.

Reglas:
    - SOLO interfaces: nada de implementación.
    - Firmas estables y provider-agnostic.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Protocol

from .assets import AssetType


class DurableStorePort(Protocol):
    """Contrato key -> blob JSON sobre un object store."""

    def get(self, key: str) -> Optional[bytes]:
        """None si la key no existe."""
        ...

    def put(self, key: str, data: bytes) -> None: ...

    def delete(self, key: str) -> None:
        """Idempotente: una key inexistente no es error."""
        ...


class AuditLogReaderPort(Protocol):
    """Contrato de lectura del audit log."""

    def get_events_by_name(
        self, event_name: str, start: datetime, end: datetime
    ) -> list[Mapping[str, Any]]:
        """Raw records; pueden traer el payload como JSON string (CloudTrailEvent)."""
        ...


class AssetSourcePort(Protocol):
    """Listado de assets usado por rebuild_cache()."""

    def list_assets(self, asset_type: AssetType) -> Iterable[Mapping[str, Any]]: ...


class UserGroupsPort(Protocol):
    """Nombres de los grupos a los que pertenece un usuario."""

    def get_user_groups(self, user_name: str) -> list[str]: ...
