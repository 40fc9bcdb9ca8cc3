"""Unit tests for domain models (assets + activity JSON shapes)."""

import pytest

from asset_portal.domain.activity import (
    ActivityCache,
    ActivityPersistence,
    MinimalEvent,
)
from asset_portal.domain.assets import (
    AssetStatus,
    AssetType,
    CacheEntry,
    MasterCache,
    StatusFilter,
    StorageType,
    export_file_path,
)

pytestmark = pytest.mark.unit


class TestAssets:
    def test_export_paths_follow_storage_type(self):
        assert (
            export_file_path(AssetType.DASHBOARD, "d1", AssetStatus.ACTIVE)
            == "assets/dashboards/d1.json"
        )
        assert (
            export_file_path(AssetType.ANALYSIS, "a1", AssetStatus.ARCHIVED)
            == "archived/analyses/a1.json"
        )
        assert (
            export_file_path(AssetType.GROUP, "", AssetStatus.ACTIVE)
            == "assets/organization/groups.json"
        )

    def test_from_source_accepts_type_specific_ids(self):
        entry = CacheEntry.from_source(
            AssetType.DATASET, {"datasetId": "ds1", "name": "Orders"}
        )

        assert entry.asset_id == "ds1"
        assert entry.asset_name == "Orders"
        assert entry.storage_type is StorageType.INDIVIDUAL
        assert entry.export_file_path == "assets/datasets/ds1.json"

    def test_from_source_without_id_is_rejected(self):
        with pytest.raises(ValueError):
            CacheEntry.from_source(AssetType.DASHBOARD, {"name": "orphan"})

    def test_cache_entry_json_shape_is_camel_case(self):
        entry = CacheEntry.from_source(
            AssetType.FOLDER,
            {"assetId": "f1", "assetName": "Finance", "tags": [{"Key": "k", "Value": "v"}]},
        )

        data = entry.to_dict()

        assert data["assetType"] == "folder"
        assert data["storageType"] == "collection"
        assert data["tags"] == [{"key": "k", "value": "v"}]
        assert CacheEntry.from_dict(data) == entry

    def test_filter_by_status_returns_copy(self):
        master = MasterCache(
            last_updated="2024-03-10T00:00:00Z",
            entries={
                AssetType.DASHBOARD: [
                    CacheEntry("d1", AssetType.DASHBOARD, "A"),
                    CacheEntry(
                        "d2", AssetType.DASHBOARD, "B", status=AssetStatus.ARCHIVED
                    ),
                ]
            },
        )

        active = master.filter_by_status(StatusFilter.ACTIVE)

        assert [e.asset_id for e in active.entries_for(AssetType.DASHBOARD)] == ["d1"]
        assert len(master.entries_for(AssetType.DASHBOARD)) == 2
        assert master.metadata_dict()["assetCounts"]["dashboard"] == 2


class TestActivity:
    def test_minimal_event_omits_empty_resource(self):
        assert MinimalEvent(t="2024-03-09T00:00:00Z", e="GetDashboard", u="u1").to_dict() == {
            "t": "2024-03-09T00:00:00Z",
            "e": "GetDashboard",
            "u": "u1",
        }

    def test_activity_cache_json_shape(self):
        cache = ActivityCache(
            last_updated="2024-03-10T12:00:00+00:00",
            start="2024-03-03T12:00:00+00:00",
            end="2024-03-10T12:00:00+00:00",
            events={
                "2024-03-09": [
                    MinimalEvent(t="2024-03-09T10:00:00Z", e="GetDashboard", u="u1", r="D")
                ]
            },
        )

        data = cache.to_dict()

        assert data["version"] == "2.0"
        assert data["dateRange"] == {
            "start": "2024-03-03T12:00:00+00:00",
            "end": "2024-03-10T12:00:00+00:00",
        }
        assert data["events"]["2024-03-09"][0]["r"] == "D"
        assert ActivityCache.from_dict(data) == cache

    def test_persistence_keeps_unknown_maps(self):
        data = {
            "version": "1.0",
            "lastUpdated": "2024-03-10T12:00:00+00:00",
            "dashboards": {"D": "2024-03-09T10:00:00Z"},
            "analyses": {},
            "users": {},
            "datasets": {"X": "2024-01-01T00:00:00Z"},
        }

        persistence = ActivityPersistence.from_dict(data)

        assert persistence.to_dict() == data
        with pytest.raises(KeyError):
            persistence.dates_for("datasets")
