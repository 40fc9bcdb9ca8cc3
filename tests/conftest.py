"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Provide reusable test fixtures
  - Fake external collaborators (durable store, audit log, asset listing)
  - Configure test environment
  - Isolate process-wide singletons between tests

Collaborators:
  - pytest: Test framework
  - asset_portal.container: composition root (reset between tests)
  - asset_portal.domain: ports implemented by the fakes

Notes:
  - Fixtures are auto-discovered by pytest
  - Raw audit records follow the LookupEvents shape (CloudTrailEvent as JSON string)
"""

import json
import os
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from asset_portal.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None

from asset_portal.application.cache_service import CacheService  # noqa: E402
from asset_portal.container import reset_container  # noqa: E402
from asset_portal.context import clear_context  # noqa: E402
from asset_portal.domain.assets import AssetType  # noqa: E402
from asset_portal.infrastructure.cache import MemoryCache  # noqa: E402
from asset_portal.infrastructure.storage import InMemoryDurableStore  # noqa: E402

os.environ.setdefault("APP_ENV", "test")

# Instante fijo para refreshes deterministas.
FIXED_NOW = datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


@pytest.fixture(autouse=True)
def _isolate_process_state():
    """R: Each test starts with fresh settings, gates, singletons and context."""
    app_config.get_settings.cache_clear()
    reset_container()
    clear_context()
    yield
    reset_container()
    app_config.get_settings.cache_clear()
    clear_context()


# ============================================================================
# Fakes
# ============================================================================


class FakeClock:
    """R: Monotonic clock controlled by the test (also usable as sleep)."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


class ScriptedAuditReader:
    """R: AuditLogReaderPort returning canned raw records per event name."""

    def __init__(
        self,
        records: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        *,
        error: Optional[Exception] = None,
    ) -> None:
        self.records = records or {}
        self.error = error
        self.calls: List[tuple] = []

    def get_events_by_name(
        self, event_name: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        self.calls.append((event_name, start, end))
        if self.error is not None:
            raise self.error
        return list(self.records.get(event_name, []))


class StaticAssetSource:
    """R: AssetSourcePort serving in-memory records per asset type."""

    def __init__(
        self,
        records: Optional[Dict[AssetType, List[Dict[str, Any]]]] = None,
        *,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.records = records or {}
        self.gate = gate
        self.calls: List[AssetType] = []

    def list_assets(self, asset_type: AssetType) -> Iterable[Dict[str, Any]]:
        # Snapshot antes de registrar la llamada: el test puede cambiar records/gate.
        gate = self.gate
        records = [dict(r) for r in self.records.get(asset_type, [])]
        self.calls.append(asset_type)
        if gate is not None:
            gate.wait(timeout=5)
        return records


def make_raw_event(
    event_name: str,
    *,
    resource_id: Optional[str],
    user: str = "u1",
    event_time: str = "2024-03-09T10:00:00Z",
    event_source: str = "quicksight.amazonaws.com",
    id_field: str = "dashboardId",
) -> Dict[str, Any]:
    """R: Raw LookupEvents record with the payload as an embedded JSON string."""
    payload: Dict[str, Any] = {
        "eventSource": event_source,
        "eventName": event_name,
        "eventTime": event_time,
        "userIdentity": {"type": "IAMUser", "userName": user},
        "requestParameters": {},
    }
    if resource_id is not None:
        payload["requestParameters"][id_field] = resource_id
    return {
        "EventName": event_name,
        "EventTime": event_time,
        "CloudTrailEvent": json.dumps(payload),
    }


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def no_retry():
    """R: Retry decorator that calls straight through (no sleeps)."""
    return lambda func: func


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def durable_store() -> InMemoryDurableStore:
    return InMemoryDurableStore()


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache(max_size=1_000, ttl_seconds=600)


@pytest.fixture
def asset_source() -> StaticAssetSource:
    return StaticAssetSource()


@pytest.fixture
def cache_service(
    durable_store: InMemoryDurableStore,
    memory_cache: MemoryCache,
    asset_source: StaticAssetSource,
) -> CacheService:
    return CacheService(
        durable_store=durable_store,
        memory_cache=memory_cache,
        asset_source=asset_source,
        clock=lambda: "2024-03-10T12:00:00+00:00",
    )


@pytest.fixture
def raw_event():
    """R: Factory for raw audit records (see make_raw_event)."""
    return make_raw_event


@pytest.fixture
def audit_reader_factory() -> type[ScriptedAuditReader]:
    return ScriptedAuditReader


@pytest.fixture
def asset_source_factory() -> type[StaticAssetSource]:
    return StaticAssetSource


@pytest.fixture
def clock_factory() -> type[FakeClock]:
    return FakeClock
