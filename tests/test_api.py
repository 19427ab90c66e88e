"""Tests for the read API (GET /cves) with an in-memory store."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from common_lib.errors import StoreAccessError
from cve_mirror.app.main import app, get_controller, get_repository
from cve_mirror.app.models import CVERecord
from cve_mirror.app.sync import SyncController


class BrokenStore:
    """Store whose reads always fail."""

    async def find(self, constraints=()):
        raise StoreAccessError("connection lost")


@pytest.fixture
def client():
    """Test client without lifespan, so no database or scheduler starts."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded_store(memory_store, sample_records):
    memory_store.records = {record.cve_id: record for record in sample_records}
    app.dependency_overrides[get_repository] = lambda: memory_store
    return memory_store


class TestListCves:
    """Test GET /cves filtering and responses."""

    def test_no_filters_returns_all(self, client, seeded_store, sample_records):
        """Test that an empty filter set returns every record."""
        response = client.get("/cves")
        assert response.status_code == 200
        body = response.json()
        assert [item["cve_id"] for item in body] == [r.cve_id for r in sample_records]
        assert set(body[0]) == {"cve_id", "description", "score", "last_modified"}

    def test_year_filter(self, client, memory_store):
        """Test year=2024 against records modified in 2024 and 2023."""
        memory_store.records = {
            "CVE-A": CVERecord(cve_id="CVE-A", description="first", score=5.0, last_modified="2024-01-01"),
            "CVE-B": CVERecord(cve_id="CVE-B", description="second", score=5.0, last_modified="2023-05-05"),
        }
        app.dependency_overrides[get_repository] = lambda: memory_store

        response = client.get("/cves", params={"year": "2024"})

        assert response.status_code == 200
        assert response.json() == [
            {"cve_id": "CVE-A", "description": "first", "score": 5.0, "last_modified": "2024-01-01"}
        ]

    def test_score_filter_excludes_unscored(self, client, seeded_store):
        """Test score=7.5 keeps only records scored 7.5 or higher."""
        response = client.get("/cves", params={"score": "7.5"})
        assert response.status_code == 200
        body = response.json()
        assert [item["cve_id"] for item in body] == ["CVE-2024-0001", "CVE-2022-0004"]
        assert all(item["score"] is not None and item["score"] >= 7.5 for item in body)

    def test_cve_id_filter(self, client, seeded_store):
        """Test exact-match lookup by CVE id."""
        response = client.get("/cves", params={"cve_id": "CVE-2023-0002"})
        assert [item["cve_id"] for item in response.json()] == ["CVE-2023-0002"]

    def test_days_filter(self, client, memory_store):
        """Test that days keeps records modified within the window."""
        today = datetime.now(timezone.utc).date()
        memory_store.records = {
            "CVE-NEW": CVERecord(cve_id="CVE-NEW", last_modified=f"{today.isoformat()}T00:00:00.000"),
            "CVE-OLD": CVERecord(cve_id="CVE-OLD", last_modified=(today - timedelta(days=90)).isoformat()),
        }
        app.dependency_overrides[get_repository] = lambda: memory_store

        response = client.get("/cves", params={"days": "7"})

        assert [item["cve_id"] for item in response.json()] == ["CVE-NEW"]

    def test_unknown_id_returns_empty_list(self, client, seeded_store):
        """Test that no match is an empty array, not an error."""
        response = client.get("/cves", params={"cve_id": "CVE-1999-0001"})
        assert response.status_code == 200
        assert response.json() == []

    def test_huge_days_matches_every_dated_record(self, client, seeded_store, sample_records):
        """Test that a very large days window is a full match, not a server error."""
        response = client.get("/cves", params={"days": "1000000"})
        assert response.status_code == 200
        expected = [r.cve_id for r in sample_records if r.last_modified]
        assert [item["cve_id"] for item in response.json()] == expected

    @pytest.mark.parametrize("params", [{"score": "high"}, {"days": "soon"}, {"year": "24"}])
    def test_malformed_filter_returns_400(self, client, seeded_store, params):
        """Test that bad filter values are client errors."""
        response = client.get("/cves", params=params)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_FILTER"

    def test_store_failure_returns_plain_500(self, client):
        """Test that store faults become a plain-text 500."""
        app.dependency_overrides[get_repository] = lambda: BrokenStore()

        response = client.get("/cves")

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "Internal Server Error"


class TestAuxiliaryEndpoints:
    """Test health, sync status and request id propagation."""

    def test_health(self, client):
        """Test the health check."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_request_id_is_echoed(self, client):
        """Test that a supplied X-Request-ID comes back on the response."""
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_is_generated(self, client):
        """Test that a request id is generated when none is supplied."""
        response = client.get("/health")
        assert response.headers["X-Request-ID"]

    def test_sync_status_before_first_run(self, client, fake_fetcher, memory_store):
        """Test the status payload of a controller that has not run."""
        controller = SyncController(fake_fetcher([]), memory_store)
        app.dependency_overrides[get_controller] = lambda: controller

        response = client.get("/sync/status")

        assert response.status_code == 200
        assert response.json() == {"state": "idle", "running": False, "last_report": None}
