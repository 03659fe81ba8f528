"""
Tests for the HTTP surface.
"""
import pytest
from fastapi.testclient import TestClient

from tubebrain.app import app
from tubebrain.config import settings
from tubebrain.services.storage import CorpusRecord

from conftest import SAMPLE_COMMENTS, FakeYouTube, FlakyStorage


@pytest.fixture
def client(monkeypatch, store, storage_paths):
    for item_id, snippets in SAMPLE_COMMENTS.items():
        store.append_corpus(CorpusRecord(item_id=item_id, snippets=snippets))

    monkeypatch.setattr(settings, "MAP_PATH", str(storage_paths.map_path))
    monkeypatch.setattr(settings, "HARVESTED_IDS_PATH", str(storage_paths.ids_path))
    monkeypatch.setattr(settings, "CORPUS_LOG_PATH", str(storage_paths.corpus_log_path))
    monkeypatch.setattr(settings, "LEGACY_STORE_PATH", str(storage_paths.legacy_path))
    monkeypatch.setattr(settings, "STORAGE_LAYOUT", "split")
    monkeypatch.setattr(settings, "HARVEST_ENABLED", False)

    with TestClient(app) as test_client:
        yield test_client


class TestBrainRouter:
    """Test suite for /brain endpoints."""

    def test_health(self, client):
        """Test health reports the brain state."""
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "healthy"
        assert resp.json()["data"]["state"] == "idle"

    def test_generate(self, client):
        """Test generated messages use only corpus tokens."""
        resp = client.post("/brain/generate", json={"count": 3})

        assert resp.status_code == 200
        messages = resp.json()["data"]["messages"]
        assert len(messages) == 3
        vocabulary = {t for comments in SAMPLE_COMMENTS.values() for c in comments for t in c.split()}
        for message in messages:
            assert set(message.split()) <= vocabulary

    def test_generate_validates_count(self, client):
        """Test count outside 1..20 is rejected."""
        assert client.post("/brain/generate", json={"count": 0}).status_code == 422

    def test_stats_after_rebuild(self, client, storage_paths):
        """Test stats reflect the map rebuilt from the corpus log at startup."""
        resp = client.get("/brain/stats")

        data = resp.json()["data"]
        assert data["key_count"] > 0
        assert data["harvested_count"] == len(SAMPLE_COMMENTS)
        assert data["map_file_bytes"] == storage_paths.map_path.stat().st_size

    def test_harvest(self, client):
        """Test a manual harvest runs one cycle."""
        source = FakeYouTube(["vid_a", "fresh"], {"fresh": ["brand new comment"]})
        client.app.state.brain.discovery = source
        client.app.state.brain.fetcher = source

        resp = client.post("/brain/harvest")

        assert resp.status_code == 200
        assert resp.json()["data"]["harvested"] == ["fresh"]

    def test_harvest_in_progress(self, client):
        """Test overlapping harvest requests get 409."""
        client.app.state.brain._cycle_running = True
        try:
            resp = client.post("/brain/harvest")
        finally:
            client.app.state.brain._cycle_running = False

        assert resp.status_code == 409

    def test_harvest_aborted(self, client):
        """Test a failing discovery call maps to 502."""
        source = FakeYouTube([], {})
        source.fail_trending = True
        client.app.state.brain.discovery = source

        assert client.post("/brain/harvest").status_code == 502

    def test_harvest_storage_failure(self, client):
        """Test a failed corpus-log append maps to the storage error envelope."""
        brain = client.app.state.brain
        source = FakeYouTube(["fresh"], {"fresh": ["brand new comment"]})
        brain.discovery = source
        brain.fetcher = source
        brain.store.backend = FlakyStorage()
        brain.store.backend.fail_appends = True

        resp = client.post("/brain/harvest")

        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "STORAGE_WRITE_FAILED"
        assert client.get("/health").json()["data"]["state"] == "error"
