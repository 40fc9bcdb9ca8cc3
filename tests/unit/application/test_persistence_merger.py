"""Unit tests for PersistenceMerger (monotonic last-seen dates)."""

import pytest

from asset_portal.application.persistence_merger import PersistenceMerger
from asset_portal.domain.activity import (
    ActivityCache,
    ActivityPersistence,
    MinimalEvent,
)

pytestmark = pytest.mark.unit

NOW = "2024-03-10T12:00:00+00:00"


def _cache(*events: MinimalEvent) -> ActivityCache:
    by_date = {}
    for event in events:
        by_date.setdefault(event.date_key, []).append(event)
    return ActivityCache(last_updated=NOW, start="", end="", events=by_date)


def test_first_merge_creates_persistence():
    merger = PersistenceMerger(clock=lambda: NOW)
    cache = _cache(
        MinimalEvent(t="2024-03-08T09:00:00Z", e="GetDashboard", u="u1", r="D"),
        MinimalEvent(t="2024-03-09T09:00:00Z", e="GetAnalysis", u="u2", r="A"),
    )

    merged = merger.merge(cache, None)

    assert merged.dashboards == {"D": "2024-03-08T09:00:00Z"}
    assert merged.analyses == {"A": "2024-03-09T09:00:00Z"}
    assert merged.users == {
        "u1": "2024-03-08T09:00:00Z",
        "u2": "2024-03-09T09:00:00Z",
    }
    assert merged.last_updated == NOW


def test_dates_never_move_backwards():
    merger = PersistenceMerger(clock=lambda: NOW)
    existing = ActivityPersistence(
        last_updated="old",
        dashboards={"D": "2024-03-09T00:00:00Z"},
        users={"u1": "2024-03-09T00:00:00Z"},
    )
    older = _cache(
        MinimalEvent(t="2024-02-01T00:00:00Z", e="GetDashboard", u="u1", r="D")
    )

    merged = merger.merge(older, existing)

    assert merged.dashboards["D"] == "2024-03-09T00:00:00Z"
    assert merged.users["u1"] == "2024-03-09T00:00:00Z"


def test_newer_events_advance_dates_and_keep_untouched_entities():
    merger = PersistenceMerger(clock=lambda: NOW)
    existing = ActivityPersistence(
        last_updated="old",
        dashboards={"D": "2024-03-01T00:00:00Z", "OLD": "2023-12-01T00:00:00Z"},
    )
    newer = _cache(
        MinimalEvent(t="2024-03-09T00:00:00Z", e="GetDashboardEmbedUrl", u="u1", r="D")
    )

    merged = merger.merge(newer, existing)

    assert merged.dashboards == {
        "D": "2024-03-09T00:00:00Z",
        "OLD": "2023-12-01T00:00:00Z",
    }


def test_existing_persistence_is_not_mutated():
    merger = PersistenceMerger(clock=lambda: NOW)
    existing = ActivityPersistence(last_updated="old", extra={"custom": {"k": "v"}})

    merged = merger.merge(
        _cache(MinimalEvent(t="2024-03-09T00:00:00Z", e="GetAnalysis", u="u1", r="A")),
        existing,
    )

    assert existing.analyses == {}
    assert existing.last_updated == "old"
    assert merged.to_dict()["custom"] == {"k": "v"}


def test_sequential_merges_are_monotonic():
    merger = PersistenceMerger(clock=lambda: NOW)
    timestamps = [
        "2024-03-05T00:00:00Z",
        "2024-03-01T00:00:00Z",
        "2024-03-07T00:00:00Z",
        "2024-03-02T00:00:00Z",
    ]

    persistence = None
    seen = []
    for ts in timestamps:
        cache = _cache(MinimalEvent(t=ts, e="GetDashboard", u="u1", r="D"))
        persistence = merger.merge(cache, persistence)
        seen.append(persistence.dashboards["D"])

    assert seen == sorted(seen)
    assert seen[-1] == "2024-03-07T00:00:00Z"
