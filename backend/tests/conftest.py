"""
App Catalog Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment variables are set BEFORE any catalog import so the settings
       singleton, the engine and the API keys all pick up test values.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── sync_config:       SyncConfig with batch_interval=0
    ├── fixed_now:         Frozen "current time" used by the sync clock
    ├── fake_repository:   In-memory AppRepository stand-in
    ├── fake_lookup:       Scriptable StoreLookupService stand-in
    ├── sync_service:      SyncService wired to the fakes
    ├── sample_apps:       Two catalog records (iOS-only and Android-only)
    └── test_client:       HTTPX AsyncClient against the FastAPI app with
                           repository and sync service overridden
"""

import os

# Override settings for testing BEFORE any catalog imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["USER_API_KEYS"] = "user-key"
os.environ["ADMIN_API_KEYS"] = "admin-key"
os.environ["SYNC_SCHEDULER_ENABLED"] = "false"

from datetime import datetime, timezone  # noqa: E402
from typing import Dict, List, Optional, Tuple  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from catalog.config import SyncConfig  # noqa: E402
from catalog.exceptions import RepositoryError  # noqa: E402
from catalog.schemas.app import AppRecord  # noqa: E402
from catalog.services.store_lookup import LookupResult, StoreMetadata  # noqa: E402
from catalog.services.sync_service import SyncService  # noqa: E402

USER_HEADERS = {"X-API-Key": "user-key"}
ADMIN_HEADERS = {"X-API-Key": "admin-key"}


# ══════════════════════════════════════════════════════════════════════════
# In-Memory Collaborators
# ══════════════════════════════════════════════════════════════════════════


class FakeRepository:
    """
    Dict-backed stand-in for AppRepository.

    Attributes:
        update_calls:     (app_id, fields) for every update_fields() call
        fail_update_ids:  update_fields() raises RepositoryError for these IDs
        get_all_failures: number of upcoming get_all() calls that should fail
    """

    def __init__(self, records: Optional[List[AppRecord]] = None):
        self.records: Dict[str, AppRecord] = {r.id: r for r in records or []}
        self.update_calls: List[Tuple[str, dict]] = []
        self.fail_update_ids = set()
        self.get_all_failures = 0
        self.get_all_calls = 0

    async def get_all(self) -> List[AppRecord]:
        self.get_all_calls += 1
        if self.get_all_failures > 0:
            self.get_all_failures -= 1
            raise RepositoryError(message="catalog unavailable")
        return [self.records[k] for k in sorted(self.records)]

    async def get_by_id(self, app_id: str) -> Optional[AppRecord]:
        return self.records.get(app_id)

    async def get_by_ids(self, app_ids) -> List[AppRecord]:
        return [self.records[i] for i in list(app_ids)[:36] if i in self.records]

    async def search(self, query: str) -> List[AppRecord]:
        needle = query.lower()
        return [
            r for r in self.records.values()
            if needle in r.id.lower() or needle in (r.query_name or "").lower()
        ]

    async def put(self, record: AppRecord) -> AppRecord:
        self.records[record.id] = record
        return record

    async def update_fields(self, app_id: str, fields: dict) -> AppRecord:
        self.update_calls.append((app_id, fields))
        if app_id in self.fail_update_ids or app_id not in self.records:
            raise RepositoryError(message=f"App '{app_id}' does not exist.")
        fields = {k: v for k, v in fields.items() if k not in ("id", "name")}
        self.records[app_id] = self.records[app_id].model_copy(update=fields)
        return self.records[app_id]

    async def update_many(self, items):
        outcomes = []
        for app_id, fields in items:
            try:
                await self.update_fields(app_id, fields)
                outcomes.append((app_id, None))
            except RepositoryError as e:
                outcomes.append((app_id, e.message))
        return outcomes

    async def ping(self) -> bool:
        return True


class FakeLookup:
    """
    Scriptable stand-in for StoreLookupService.

    results:  {(platform, store_app_id): LookupResult}; missing keys → NOT_FOUND
    raising:  {(platform, store_app_id)} that raise RuntimeError
    calls:    every (platform, store_app_id) looked up, in order
    """

    def __init__(self):
        self.results: Dict[Tuple[str, str], LookupResult] = {}
        self.raising = set()
        self.calls: List[Tuple[str, str]] = []

    async def lookup(self, platform: str, store_app_id: str) -> LookupResult:
        self.calls.append((platform, store_app_id))
        if (platform, store_app_id) in self.raising:
            raise RuntimeError(f"{platform} store exploded")
        return self.results.get((platform, store_app_id), LookupResult.not_found())

    async def aclose(self) -> None:
        return None


def ios_metadata(**overrides) -> StoreMetadata:
    values = dict(
        platform="ios",
        artwork_url="https://is1.mzstatic.com/artwork512.png",
        store_url="https://apps.apple.com/us/app/id1",
        bundle_id="com.example.city",
        version="4.2.0",
        release_date="2019-05-02T07:00:00Z",
        current_version_release_date="2024-03-01T17:30:00Z",
        screenshots=("https://is1.mzstatic.com/s1.png", "https://is1.mzstatic.com/s2.png"),
        languages=("EN", "ES"),
    )
    values.update(overrides)
    return StoreMetadata(**values)


def android_metadata(**overrides) -> StoreMetadata:
    values = dict(
        platform="android",
        artwork_url="https://play-lh.googleusercontent.com/icon.png",
        store_url="https://play.google.com/store/apps/details?id=com.example.city",
        version="4.1.9",
        release_date="May 2, 2019",
        current_version_release_date=1709251200,  # 2024-03-01
        screenshots=("https://play-lh.googleusercontent.com/p1.png",),
    )
    values.update(overrides)
    return StoreMetadata(**values)


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def fixed_now():
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sync_config():
    return SyncConfig(batch_size=1, batch_interval=0, staleness_threshold=60, lookup_timeout=1)


@pytest.fixture
def sample_apps():
    """A: tracked on iOS only; B: tracked on Android only."""
    return [
        AppRecord(id="A", name="Alpha City", query_name="alpha city", ios_app_id="1"),
        AppRecord(id="B", name="Beta Town", query_name="beta town", android_app_id="2"),
    ]


@pytest.fixture
def fake_repository(sample_apps):
    return FakeRepository(sample_apps)


@pytest.fixture
def fake_lookup():
    return FakeLookup()


@pytest.fixture
def sync_service(fake_repository, fake_lookup, sync_config, fixed_now):
    return SyncService(
        repository=fake_repository,
        lookup=fake_lookup,
        config=sync_config,
        clock=lambda: fixed_now,
        fetch_attempts=3,
        fetch_min_wait=0,
        fetch_max_wait=0,
    )


@pytest_asyncio.fixture
async def test_client(fake_repository, sync_service):
    """
    HTTPX AsyncClient routed straight into the FastAPI app (no server, no
    lifespan, so the cron scheduler never starts).
    """
    from catalog.dependencies import get_app_repository, get_sync_service
    from catalog.main import app

    app.dependency_overrides[get_app_repository] = lambda: fake_repository
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
