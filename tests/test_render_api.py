"""
Tests for the render HTTP API.

Run with: pytest tests/test_render_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from quotecast.main import create_app
from tests.conftest import residual_workspaces

QUOTE = {"assetId": "abc123", "text": "It's 100% fun: enjoy"}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def stream_context(make_context):
    return make_context()


@pytest.fixture
def client(stream_context):
    """FastAPI test client over an isolated render context."""
    with TestClient(create_app(context=stream_context), raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def persist_context(make_context, storage):
    return make_context(storage=storage)


@pytest.fixture
def persist_client(persist_context):
    with TestClient(create_app(context=persist_context), raise_server_exceptions=False) as c:
        yield c


# =============================================================================
# Stream mode
# =============================================================================


class TestStreamMode:
    def test_stream_returns_video(self, client, stream_context, temp_root):
        """Default request streams a non-empty mp4 and leaves no temp files."""
        response = client.post("/render", json=QUOTE)

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert int(response.headers["content-length"]) == len(response.content) > 0
        assert response.headers["content-disposition"].startswith("inline")
        assert len(response.headers["x-video-hash"]) == 64
        assert response.headers["x-photographer"] == "Jane%20Doe"
        assert residual_workspaces(temp_root) == []
        assert len(stream_context.executor.calls) == 1

    def test_api_prefix(self, client):
        response = client.post("/api/render", json=QUOTE)
        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"

    def test_persist_without_storage_degrades(self, client):
        response = client.post("/render?persist=true", json=QUOTE)
        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert response.headers["x-delivery-degraded"] == "stream"


# =============================================================================
# Persist mode
# =============================================================================


class TestPersistMode:
    def test_persist_twice_hits_cache(self, persist_client, persist_context, temp_root):
        """Second identical persist request is served from the cache."""
        first = persist_client.post("/render?persist=true", json=QUOTE)
        second = persist_client.post("/render?persist=true", json=QUOTE)

        assert first.status_code == 200
        assert second.status_code == 200
        a, b = first.json(), second.json()
        assert a["success"] is True
        assert a["cached"] is False
        assert b["cached"] is True
        assert a["hash"] == b["hash"]
        assert a["url"] == b["url"]
        assert a["size"] > 0
        assert a["duration"] == 5
        assert a["photographer"] == "Jane Doe"
        assert len(persist_context.executor.calls) <= 1
        assert residual_workspaces(temp_root) == []

    def test_body_persist_flag(self, persist_client):
        response = persist_client.post("/render", json={**QUOTE, "persist": True})
        assert response.status_code == 200
        assert response.json()["url"].startswith("http://testserver/files/videos/")

    def test_strict_persist_without_storage(self, make_context):
        ctx = make_context(storage=None, settings_overrides={"strict_persist": True})
        with TestClient(create_app(context=ctx), raise_server_exceptions=False) as c:
            response = c.post("/render?persist=true", json=QUOTE)
        assert response.status_code == 503
        assert response.json()["error"] == "STORAGE_NOT_CONFIGURED"


# =============================================================================
# Errors
# =============================================================================


class TestErrors:
    def test_missing_asset(self, client, stream_context, temp_root):
        response = client.post("/render", json={**QUOTE, "assetId": "missing-photo"})

        assert response.status_code == 404
        data = response.json()
        assert data["error"] == "ASSET_NOT_FOUND"
        assert data["retryable"] is False
        assert "missing-photo" in data["message"]
        assert stream_context.executor.calls == []
        assert "semaphore_acquired" not in [e.event for e in stream_context.telemetry.events()]
        assert residual_workspaces(temp_root) == []

    @pytest.mark.parametrize(
        "body,field",
        [
            ({"text": "hello"}, "assetId"),
            ({"assetId": "abc123"}, "text"),
            ({"assetId": "abc123", "text": "   "}, "text"),
            ({"assetId": "bad id!", "text": "hello"}, "assetId"),
            ({"assetId": "abc123", "text": "x" * 501}, "text"),
        ],
    )
    def test_invalid_input(self, client, stream_context, body, field):
        response = client.post("/render", json=body)
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "INVALID_INPUT"
        assert data["details"]["field"] == field
        # No side effects before validation succeeds
        assert stream_context.telemetry.events() == []

    def test_non_object_body(self, client):
        response = client.post("/render", json=["not", "an", "object"])
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_INPUT"

    def test_bad_persist_query(self, client):
        response = client.post("/render?persist=maybe", json=QUOTE)
        assert response.status_code == 400

    @pytest.mark.slow
    def test_timeout(self, make_context, temp_root):
        ctx = make_context(encoder="hang", timeout_s=1.0)
        with TestClient(create_app(context=ctx), raise_server_exceptions=False) as c:
            response = c.post("/render", json=QUOTE)
        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "RENDER_TIMEOUT"
        assert data["retryable"] is True
        assert ctx.gate.running == 0
        assert residual_workspaces(temp_root) == []

    def test_encoder_failure_includes_stderr_tail(self, make_context):
        ctx = make_context(encoder="fail")
        with TestClient(create_app(context=ctx), raise_server_exceptions=False) as c:
            response = c.post("/render", json=QUOTE)
        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "RENDER_FAILED"
        assert data["details"]["returncode"] == 1
        assert len(data["details"]["stderr_tail"]) <= 2000

    def test_unknown_route(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


# =============================================================================
# Status, metrics, health
# =============================================================================


class TestStatusEndpoints:
    def test_status_idle(self, client):
        response = client.get("/render/status")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["queue"] == {"running": 0, "queued": 0, "max": 2}
        assert data["recent_telemetry"] == []

    def test_status_after_job(self, client):
        client.post("/render", json=QUOTE)
        events = client.get("/render/status").json()["recent_telemetry"]
        assert events[0]["event"] == "job_started"
        assert events[-1]["event"] == "job_complete"
        assert all("timestamp" in e for e in events)

    def test_status_window(self, make_context):
        ctx = make_context(settings_overrides={"telemetry_window": 3})
        for i in range(10):
            ctx.telemetry.record("tick", {"i": i})
        with TestClient(create_app(context=ctx)) as c:
            events = c.get("/render/status").json()["recent_telemetry"]
        assert [e["metadata"]["i"] for e in events] == [7, 8, 9]

    def test_metrics(self, client):
        client.post("/render", json=QUOTE)
        response = client.get("/render/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "quotecast_jobs_succeeded_total 1" in response.text
        assert "quotecast_queue_running 0" in response.text

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
