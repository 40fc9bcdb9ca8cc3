"""
Name: S3 Exported Asset Source Tests

Responsibilities:
  - Validate individual exports (assets/<plural>/<id>.json) are flattened
  - Validate collection exports (organization/<plural>.json) are expanded
  - Validate archived exports are tagged with status=archived
"""

import json
from typing import Dict, List, Optional

import pytest

from asset_portal.domain.assets import AssetStatus, AssetType, CacheEntry
from asset_portal.infrastructure.assets import S3ExportedAssetSource

pytestmark = pytest.mark.unit


class FakeExportStore:
    """Minimal stand-in for S3DurableStore (get + list_keys)."""

    def __init__(self, objects: Dict[str, object]) -> None:
        self._objects = {
            key: value if isinstance(value, bytes) else json.dumps(value).encode()
            for key, value in objects.items()
        }

    def get(self, key: str) -> Optional[bytes]:
        return self._objects.get(key)

    def list_keys(self, prefix: str) -> List[str]:
        return sorted(k for k in self._objects if k.startswith(prefix))


def _dashboard_export(dashboard_id: str, name: str) -> dict:
    return {
        "apiResponses": {
            "list": {
                "timestamp": "2024-03-01T00:00:00Z",
                "data": {
                    "DashboardId": dashboard_id,
                    "Name": name,
                    "Arn": f"arn:aws:quicksight:us-east-1:123:dashboard/{dashboard_id}",
                    "CreatedTime": "2023-01-01T00:00:00Z",
                    "LastUpdatedTime": "2024-02-01T00:00:00Z",
                },
            },
            "tags": {"data": [{"Key": "team", "Value": "bi"}]},
            "permissions": {"data": [{"Principal": "arn:group/analysts"}]},
        }
    }


def test_individual_exports_are_flattened_active_then_archived():
    store = FakeExportStore(
        {
            "assets/dashboards/d1.json": _dashboard_export("d1", "Sales"),
            "archived/dashboards/d0.json": _dashboard_export("d0", "Old"),
            "assets/dashboards/readme.txt": b"ignored",
        }
    )
    source = S3ExportedAssetSource(store)

    records = list(source.list_assets(AssetType.DASHBOARD))

    assert [r["assetId"] for r in records] == ["d1", "d0"]
    active, archived = records
    assert active["assetName"] == "Sales"
    assert active["status"] == "active"
    assert active["exportFilePath"] == "assets/dashboards/d1.json"
    assert active["exportedAt"] == "2024-03-01T00:00:00Z"
    assert archived["status"] == "archived"

    entry = CacheEntry.from_source(AssetType.DASHBOARD, active)
    assert entry.arn.endswith("dashboard/d1")
    assert entry.tags == [{"key": "team", "value": "bi"}]
    assert entry.created_time == "2023-01-01T00:00:00Z"


def test_collection_exports_expand_to_one_record_per_key():
    store = FakeExportStore(
        {
            "assets/organization/users.json": {
                "alice": {"userName": "alice", "email": "alice@example.com"},
                "bob": {"userName": "bob"},
            },
            "archived/organization/users.json": {"carol": {"userName": "carol"}},
        }
    )
    source = S3ExportedAssetSource(store)

    records = list(source.list_assets(AssetType.USER))

    assert {r["assetId"]: r["status"] for r in records} == {
        "alice": "active",
        "bob": "active",
        "carol": "archived",
    }
    entry = CacheEntry.from_source(AssetType.USER, records[0])
    assert entry.status is AssetStatus.ACTIVE
    assert entry.export_file_path == "assets/organization/users.json"


def test_unparsable_exports_are_skipped():
    store = FakeExportStore(
        {
            "assets/datasets/ok.json": {"assetId": "ok", "assetName": "Fine"},
            "assets/datasets/broken.json": b"{not json",
        }
    )
    source = S3ExportedAssetSource(store)

    records = list(source.list_assets(AssetType.DATASET))

    assert [r["assetId"] for r in records] == ["ok"]


def test_missing_collection_yields_nothing():
    source = S3ExportedAssetSource(FakeExportStore({}))

    assert list(source.list_assets(AssetType.GROUP)) == []
