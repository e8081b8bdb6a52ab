"""
App Catalog Backend — API Route Tests
======================================

What:  HTTP-level tests for /api/app, /api/public and /health.
How:   test_client fixture (ASGITransport) with the repository and sync
       service replaced by the in-memory fakes from conftest.

What we test:
    ✅ API key handling: missing (401), unknown (401), too weak (403)
    ✅ CRUD endpoints and camelCase JSON
    ✅ get-app refreshes stale store data
    ✅ Search query validation
    ✅ sync-store acknowledges with 202 while the run continues
    ✅ Public endpoint needs no key; /health reports status
"""

import asyncio

import pytest

from catalog.services.store_lookup import LookupResult
from conftest import ADMIN_HEADERS, USER_HEADERS, ios_metadata

NEW_APP = {
    "id": "C",
    "name": "Gamma Village",
    "env": "prod",
    "tenant": "gamma",
    "city": "Gamma",
    "country": "US",
    "iosAppId": "9",
}


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_key_is_401(self, test_client):
        response = await test_client.get("/api/app/get-all-apps")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"
        assert response.headers["WWW-Authenticate"] == "ApiKey"

    @pytest.mark.asyncio
    async def test_unknown_key_is_401(self, test_client):
        response = await test_client.get(
            "/api/app/get-all-apps", headers={"X-API-Key": "stolen"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid API key"

    @pytest.mark.asyncio
    async def test_user_key_on_admin_route_is_403(self, test_client):
        response = await test_client.post("/api/app/sync-store", headers=USER_HEADERS)
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_admin_key_satisfies_user_routes(self, test_client):
        response = await test_client.get("/api/app/get-all-apps", headers=ADMIN_HEADERS)
        assert response.status_code == 200


class TestReadEndpoints:

    @pytest.mark.asyncio
    async def test_get_all_apps_uses_camel_case(self, test_client):
        response = await test_client.get("/api/app/get-all-apps", headers=USER_HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert [a["id"] for a in data] == ["A", "B"]
        assert data[0]["queryName"] == "alpha city"
        assert data[0]["iosAppId"] == "1"

    @pytest.mark.asyncio
    async def test_get_all_apps_empty_catalog_is_404(self, test_client, fake_repository):
        fake_repository.records.clear()
        response = await test_client.get("/api/app/get-all-apps", headers=USER_HEADERS)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_get_app_missing_is_404(self, test_client):
        response = await test_client.get("/api/app/get-app/nope", headers=USER_HEADERS)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_get_app_refreshes_stale_record(self, test_client, fake_lookup, fake_repository):
        fake_lookup.results[("ios", "1")] = LookupResult.of(ios_metadata())

        response = await test_client.get("/api/app/get-app/A", headers=USER_HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["iosVersion"] == "4.2.0"
        assert data["lastStoreUpdate"].startswith("2024-06-01T12:00:00")
        assert fake_repository.records["A"].ios_version == "4.2.0"

    @pytest.mark.asyncio
    async def test_get_app_lookup_failure_still_returns_record(self, test_client, fake_lookup):
        fake_lookup.raising.add(("ios", "1"))

        response = await test_client.get("/api/app/get-app/A", headers=USER_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"]["id"] == "A"

    @pytest.mark.asyncio
    async def test_get_apps_by_ids(self, test_client):
        response = await test_client.post(
            "/api/app/get-apps-by-ids",
            json={"ids": ["B", "missing", "A"]},
            headers=USER_HEADERS,
        )
        assert response.status_code == 200
        assert [a["id"] for a in response.json()["data"]] == ["B", "A"]

    @pytest.mark.asyncio
    async def test_search(self, test_client):
        response = await test_client.get(
            "/api/app/search-apps", params={"q": "beta"}, headers=USER_HEADERS
        )
        assert response.status_code == 200
        assert [a["id"] for a in response.json()["data"]] == ["B"]

    @pytest.mark.asyncio
    async def test_search_rejects_disallowed_characters(self, test_client):
        response = await test_client.get(
            "/api/app/search-apps", params={"q": "a;drop table"}, headers=USER_HEADERS
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_search_requires_query(self, test_client):
        response = await test_client.get("/api/app/search-apps", headers=USER_HEADERS)
        assert response.status_code == 422


class TestWriteEndpoints:

    @pytest.mark.asyncio
    async def test_add_app(self, test_client, fake_repository, fake_lookup):
        response = await test_client.post("/api/app/add-app", json=NEW_APP, headers=USER_HEADERS)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["id"] == "C"
        assert data["queryName"] == "gamma village"
        assert "C" in fake_repository.records
        # Enrichment is attempted right away
        assert ("ios", "9") in fake_lookup.calls

    @pytest.mark.asyncio
    async def test_add_app_duplicate_is_400(self, test_client):
        duplicate = dict(NEW_APP, id="A")
        response = await test_client.post("/api/app/add-app", json=duplicate, headers=USER_HEADERS)
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "id"

    @pytest.mark.asyncio
    async def test_add_app_missing_required_field_is_422(self, test_client):
        body = {k: v for k, v in NEW_APP.items() if k != "city"}
        response = await test_client.post("/api/app/add-app", json=body, headers=USER_HEADERS)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_add_multiple_apps_reports_each_item(self, test_client):
        body = [NEW_APP, dict(NEW_APP, id="A", name="Dup")]

        response = await test_client.post(
            "/api/app/add-multiple-apps", json=body, headers=USER_HEADERS
        )

        assert response.status_code == 200
        results = response.json()
        assert [r["success"] for r in results] == [True, False]

    @pytest.mark.asyncio
    async def test_update_app_keeps_id_and_name(self, test_client, fake_repository):
        body = {"id": "A", "name": "Renamed", "city": "Alphaville", "country": "CA"}

        response = await test_client.put("/api/app/update-app", json=body, headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["city"] == "Alphaville"
        assert data["name"] == "Alpha City"

    @pytest.mark.asyncio
    async def test_update_app_missing_is_404(self, test_client):
        body = {"id": "nope", "name": "X", "city": "Y", "country": "Z"}
        response = await test_client.put("/api/app/update-app", json=body, headers=ADMIN_HEADERS)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_multiple_apps_is_partial(self, test_client, fake_repository):
        body = [{"id": "A", "region": "North"}, {"id": "ghost", "region": "South"}]

        response = await test_client.post(
            "/api/app/update-multiple-apps", json=body, headers=ADMIN_HEADERS
        )

        assert response.status_code == 200
        assert [r["success"] for r in response.json()] == [True, False]
        assert fake_repository.records["A"].region == "North"
        assert fake_repository.records["A"].city is None
        assert fake_repository.update_calls[0] == ("A", {"region": "North"})


class TestSyncStore:

    @pytest.mark.asyncio
    async def test_sync_store_is_accepted(self, test_client, sync_service):
        response = await test_client.post("/api/app/sync-store", headers=ADMIN_HEADERS)

        assert response.status_code == 202
        body = response.json()
        assert body["totalApps"] == 2
        assert body["batchSize"] == 1
        assert body["state"] == "running"
        assert "runId" in body
        assert "startedAt" in body

        runs = list(sync_service.active_runs)
        await asyncio.wait_for(asyncio.gather(*(run.wait() for run in runs)), timeout=2)

    @pytest.mark.asyncio
    async def test_sync_store_catalog_failure_is_500(self, test_client, fake_repository):
        fake_repository.get_all_failures = 10
        response = await test_client.post("/api/app/sync-store", headers=ADMIN_HEADERS)
        assert response.status_code == 500
        assert response.json()["error"] == "sync_not_started"


class TestPublicAndHealth:

    @pytest.mark.asyncio
    async def test_public_city_data_needs_no_key(self, test_client, fake_lookup):
        response = await test_client.get("/api/public/get-city-data/B")

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Beta Town"
        assert fake_lookup.calls == []

    @pytest.mark.asyncio
    async def test_public_city_data_missing_is_404(self, test_client):
        response = await test_client.get("/api/public/get-city-data/nope")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["scheduler"] == "disabled"

    @pytest.mark.asyncio
    async def test_health_database_down_is_503(self, test_client, fake_repository):
        async def down():
            return False

        fake_repository.ping = down
        response = await test_client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_request_id_header_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
