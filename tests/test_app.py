"""API tests for the TrendPulse service."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from trendpulse.app import app
from trendpulse.core.db import get_db
from trendpulse.core.settings import settings
from trendpulse.scoring.heat import HeatPassResult
from trendpulse.trends.pipeline import TrendPassResult


@pytest.fixture
def client():
    session = AsyncMock()

    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_healthz(client):
    with patch('trendpulse.app.ping_db', new=AsyncMock()):
        response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "trendpulse"
    assert data["database"] == "ok"


def test_healthz_reports_database_down(client):
    with patch('trendpulse.app.ping_db', new=AsyncMock(side_effect=OSError("refused"))):
        response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["database"] == "unavailable"


def test_root_lists_endpoints(client):
    response = client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "TrendPulse"
    assert "heat_run" in data["endpoints"]


# ==========================================
# INGESTION BOUNDARY
# ==========================================

def test_create_content(client):
    row = SimpleNamespace(id="item-1")
    with patch('trendpulse.app.insert_content_item', new=AsyncMock(return_value=(True, row))) as mock_insert:
        response = client.post("/content", json={
            "id": "item-1",
            "title": "  Trailer drops for summer blockbuster ",
            "source": "reddit_movies",
            "published_at": "2025-09-12T10:00:00",
        })

    assert response.status_code == 201
    assert response.json() == {"id": "item-1", "created": True}

    item = mock_insert.await_args.args[1]
    assert item.title == "Trailer drops for summer blockbuster"
    assert item.published_at == datetime(2025, 9, 12, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("payload", [
    {"id": "x", "source": "rss:a"},
    {"id": "x", "title": "   ", "source": "rss:a"},
    {"id": "x", "title": "t", "source": "rss:a", "embedding": []},
])
def test_create_content_validation(client, payload):
    response = client.post("/content", json=payload)
    assert response.status_code == 422


def test_create_snapshot(client):
    row = SimpleNamespace(id=42)
    with patch('trendpulse.app.insert_metric_snapshot', new=AsyncMock(return_value=row)):
        response = client.post("/content/item-1/metrics", json={"views_30m": 100, "shares_30m": 4})

    assert response.status_code == 201
    assert response.json() == {"id": 42, "content_id": "item-1"}


def test_create_snapshot_unknown_item(client):
    with patch('trendpulse.app.insert_metric_snapshot',
               new=AsyncMock(side_effect=LookupError("Content item not found: nope"))):
        response = client.post("/content/nope/metrics", json={"views_30m": 1})

    assert response.status_code == 404


def test_create_snapshot_rejects_negative_counters(client):
    response = client.post("/content/item-1/metrics", json={"views_30m": -1})
    assert response.status_code == 422


# ==========================================
# CONSUMERS
# ==========================================

def test_list_trends(client):
    rows = [SimpleNamespace(
        id=7,
        topic="Sequel announced",
        trend_score=0.37,
        sources=["a", "b"],
        supporting_items=[{"id": "1", "title": "Sequel announced", "url": None, "source": "A"}],
        status="new",
        detected_at=datetime(2025, 9, 12, 11, 0, tzinfo=timezone.utc),
    )]

    with patch('trendpulse.app.list_trends', new=AsyncMock(return_value=rows)):
        response = client.get("/trends")

    assert response.status_code == 200
    data = response.json()
    assert data[0]["id"] == 7
    assert data[0]["sources"] == ["a", "b"]
    assert data[0]["status"] == "new"


def test_hot_content(client):
    hot = [{"id": "a", "title": "A", "heat_score": 150.0}]
    with patch('trendpulse.app.get_hot_content', new=AsyncMock(return_value=hot)) as mock_hot:
        response = client.get("/content/hot?limit=10")

    assert response.status_code == 200
    assert response.json() == hot
    assert mock_hot.await_args.kwargs == {"hours": 48.0, "limit": 10}


def test_trend_status_update(client):
    with patch('trendpulse.app.update_trend_status', new=AsyncMock(return_value=True)):
        response = client.post("/trends/7/status", json={"status": "used"})

    assert response.status_code == 200
    assert response.json() == {"id": 7, "status": "used"}


def test_trend_status_rejects_new(client):
    response = client.post("/trends/7/status", json={"status": "new"})
    assert response.status_code == 422


def test_trend_status_unknown_trend(client):
    with patch('trendpulse.app.update_trend_status', new=AsyncMock(return_value=False)):
        response = client.post("/trends/999/status", json={"status": "ignored"})

    assert response.status_code == 404


# ==========================================
# MANUAL PASSES
# ==========================================

def test_run_heat(client):
    result = HeatPassResult(processed=3, errors=["[x] no metric snapshots"])
    with patch('trendpulse.trends.pipeline.run_heat_scoring', new=AsyncMock(return_value=result)):
        response = client.post("/heat/run")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "partial"
    assert data["result"]["processed"] == 3


def test_run_trends_fatal_is_server_error(client):
    result = TrendPassResult(errors=["Clustering failed: db down"], fatal=True)
    with patch('trendpulse.trends.pipeline.run_trend_detection', new=AsyncMock(return_value=result)):
        response = client.post("/trends/run")

    assert response.status_code == 500


def test_manual_runs_can_be_disabled(client, monkeypatch):
    monkeypatch.setattr(settings, "allow_manual_run", False)

    response = client.post("/embeddings/run")

    assert response.status_code == 403


def test_basic_auth_when_enabled(client, monkeypatch):
    monkeypatch.setattr(settings, "api_auth_enabled", True)
    result = HeatPassResult(processed=1)

    with patch('trendpulse.trends.pipeline.run_heat_scoring', new=AsyncMock(return_value=result)):
        assert client.post("/heat/run").status_code == 401
        assert client.post("/heat/run", auth=("admin", "wrong")).status_code == 401
        response = client.post("/heat/run", auth=(settings.api_username, settings.api_password))

    assert response.status_code == 200
    assert response.json()["status"] == "success"
