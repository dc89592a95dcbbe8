"""
Tests for the HTTP surface
"""
import json
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from companies_search.app import (
    app,
    get_engine,
    get_preset_store,
    get_result_cache,
    get_snapshot_store,
    purge_expired_data,
)
from companies_search.errors import StorageError, UpstreamError
from companies_search.models import SearchFilters
from companies_search.services.cache import CacheKind, DurableCache, ResultCache
from companies_search.services.preset_store import PresetStore
from companies_search.services.snapshot_store import SnapshotStore

from conftest import FakeCompaniesHouse, advanced_item, make_engine, officer


def _candidates():
    return [advanced_item(f"{i:08d}") for i in range(1, 13)]


@pytest.fixture
def api():
    return FakeCompaniesHouse(
        advanced_items=_candidates(),
        officers={"00000002": [officer("A", 1940)], "00000005": [officer("B", 1945)]},
    )


@pytest.fixture
def client(api, session_factory, clock):
    store = SnapshotStore(session_factory, clock=clock)
    cache = ResultCache(clock=clock)
    app.dependency_overrides[get_engine] = lambda: make_engine(api, snapshots=store, cache=cache)
    app.dependency_overrides[get_snapshot_store] = lambda: store
    app.dependency_overrides[get_result_cache] = lambda: cache
    app.dependency_overrides[get_preset_store] = lambda: PresetStore(session_factory, clock=clock)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _sse_events(text):
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


class TestSearch:
    def test_returns_page_and_token(self, client):
        response = client.post("/api/search", json={"filters": {"keyword": "company"}, "page": 2, "page_size": 5})

        assert response.status_code == 200
        body = response.json()
        assert [item["company_number"] for item in body["items"]] == [f"{i:08d}" for i in range(6, 11)]
        assert body["total_estimated"] == 12
        assert body["page"] == 2
        assert body["strategy"] == "direct_advanced_search"
        assert body["truncated"] is False
        assert len(body["result_token"]) == 32

    def test_empty_filters_rejected(self, client):
        response = client.post("/api/search", json={"filters": {}})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["kind"] == "ValidationError"
        assert error["status_code"] == 400

    def test_invalid_page_size_rejected(self, client):
        response = client.post("/api/search", json={"filters": {"keyword": "acme"}, "page_size": 500})
        assert response.status_code == 400

    def test_upstream_error_status_passed_through(self, client, api):
        api.advanced_search = Mock(side_effect=UpstreamError(502, "Bad gateway"))

        response = client.post("/api/search", json={"filters": {"keyword": "acme"}})

        assert response.status_code == 502
        assert response.json()["error"]["message"] == "Bad gateway"


class TestStream:
    def test_progress_then_result(self, client):
        response = client.post("/api/search/stream", json={"filters": {"officer_birth_year": 1950}, "page_size": 20})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(response.text)
        kinds = [kind for kind, _ in events]
        assert kinds == ["progress", "progress", "result"]
        assert events[0][1] == {"current": 10, "total": 12}
        assert events[1][1] == {"current": 12, "total": 12}
        result = events[-1][1]
        assert [item["company_number"] for item in result["items"]] == ["00000002", "00000005"]
        assert result["strategy"] == "officer_filter"

    def test_validation_error_before_stream(self, client):
        response = client.post("/api/search/stream", json={"filters": {}})
        assert response.status_code == 400

    def test_error_event(self, client, api):
        api.advanced_search = Mock(side_effect=UpstreamError(504, "timed out"))

        response = client.post("/api/search/stream", json={"filters": {"keyword": "acme"}})

        events = _sse_events(response.text)
        assert events == [("error", events[0][1])]
        assert events[0][1]["status_code"] == 504


class TestExport:
    def _token(self, client):
        response = client.post("/api/search", json={"filters": {"officer_birth_year": 1950}, "page_size": 1})
        return response.json()["result_token"]

    def test_csv_contains_full_collection(self, client):
        response = client.get("/api/export", params={"token": self._token(client)})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=companies_export_" in response.headers["content-disposition"]
        lines = response.content.decode("utf-8-sig").splitlines()
        assert len(lines) == 3

    def test_json(self, client):
        response = client.get("/api/export", params={"token": self._token(client), "format": "json"})

        assert [item["company_number"] for item in response.json()] == ["00000002", "00000005"]

    def test_unknown_token(self, client):
        response = client.get("/api/export", params={"token": "nope"})

        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "SnapshotNotFound"

    def test_unknown_format(self, client):
        response = client.get("/api/export", params={"token": "nope", "format": "pdf"})
        assert response.status_code == 422


class TestReferenceEndpoints:
    def test_sic_code_search(self, client):
        codes = [entry["code"] for entry in client.get("/api/sic-codes", params={"q": "software"}).json()]
        assert "62010" in codes

    def test_all_sic_codes(self, client):
        assert len(client.get("/api/sic-codes").json()) > 50

    def test_cache_stats(self, client):
        client.post("/api/search", json={"filters": {"officer_birth_year": 1950}})

        stats = client.get("/api/cache/stats").json()
        assert stats["volatile_entries"] > 0

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestStorageErrors:
    def test_snapshot_failure_maps_to_503(self, client, api):
        snapshots = Mock()
        snapshots.store.side_effect = StorageError("Could not save search results for export")
        app.dependency_overrides[get_engine] = lambda: make_engine(api, snapshots=snapshots)

        response = client.post("/api/search", json={"filters": {"keyword": "acme"}})

        assert response.status_code == 503
        assert response.json()["error"]["kind"] == "StorageError"


class TestPresets:
    def test_create_list_delete(self, client):
        created = client.post("/api/presets", json={
            "name": "Old directors",
            "filters": {"keyword": "acme", "officer_birth_year": 1950},
        })
        assert created.status_code == 201
        preset = created.json()["preset"]
        assert preset["filters"]["officer_birth_year"] == 1950

        listed = client.get("/api/presets").json()["presets"]
        assert [p["id"] for p in listed] == [preset["id"]]

        assert client.delete(f"/api/presets/{preset['id']}").status_code == 204
        assert client.get("/api/presets").json() == {"presets": []}

    def test_invalid_preset(self, client):
        response = client.post("/api/presets", json={"name": " ", "filters": {"keyword": "acme"}})

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "ValidationError"

    def test_delete_unknown(self, client):
        response = client.delete("/api/presets/missing")

        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "PresetNotFound"


class TestStartupPurge:
    def test_removes_expired_snapshots_and_cache_entries(self, session_factory, clock):
        snapshots = SnapshotStore(session_factory, clock=clock)
        cache = ResultCache(durable=DurableCache(session_factory, clock=clock), clock=clock)
        snapshots.store("token", SearchFilters(keyword="acme"), [])
        cache.put(CacheKind.SEARCH, "search:acme:1:100", {"items": []})

        clock.advance(hours=25)
        purge_expired_data(snapshots, cache)

        assert snapshots.purge_expired() == 0
        assert cache.purge_expired() == 0
        assert cache.stats()["total_cached"] == 0
