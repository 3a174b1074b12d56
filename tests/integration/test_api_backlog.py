"""Integration tests for GET /backlog."""
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from backlog.api.main import create_app
from backlog.config import Settings, get_settings
from backlog.linear.client import IssuePage, PageInfo
from backlog.linear.errors import LinearApiError, LinearApiErrorKind, LinearNetworkError
from backlog.linear.transformers import TransformResult
from backlog.sync.history import SyncHistoryRecorder
from backlog.sync.service import SyncService


def make_issue(**overrides) -> dict:
    issue = {
        "id": "i-1",
        "identifier": "VIX-1",
        "title": "Live issue",
        "priority": 2,
        "sortOrder": 3.0,
        "url": "https://linear.app/vixxo/issue/VIX-1",
        "createdAt": "2026-02-01T10:00:00.000Z",
        "updatedAt": "2026-02-02T10:00:00.000Z",
        "state": {"name": "Todo", "type": "unstarted"},
        "team": {"id": "team-1", "name": "Vixxo"},
        "labels": {"nodes": []},
    }
    issue.update(overrides)
    return issue


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(linear_project_id="proj-1", _env_file=None)


@pytest.fixture(name="linear")
def linear_fixture():
    client = AsyncMock()
    client.fetch_page = AsyncMock(return_value=IssuePage(records=[], page_info=PageInfo()))
    return client


@pytest.fixture(name="service")
def service_fixture(linear, settings):
    return SyncService(linear, settings=settings)


@pytest.fixture(name="client")
def client_fixture(service, settings, engine):
    app = create_app(service=service, history=SyncHistoryRecorder(engine), scheduler_factory=None)
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as c:
        yield c


class TestBacklogFromCache:
    @pytest.mark.asyncio
    async def test_serves_cached_items(self, client, service, linear, make_item):
        service._transform = lambda records: TransformResult(items=[
            make_item(id="a", identifier="VIX-1", priority=3),
            make_item(id="b", identifier="VIX-2", priority=1),
        ])
        await service.run()
        linear.fetch_page.reset_mock()

        resp = client.get("/backlog")

        assert resp.status_code == 200
        body = resp.json()
        assert body["source"] == "cache"
        assert body["total_count"] == 2
        assert [i["identifier"] for i in body["items"]] == ["VIX-2", "VIX-1"]
        linear.fetch_page.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_project_is_still_cache(self, client, service, linear):
        await service.run()
        linear.fetch_page.reset_mock()

        body = client.get("/backlog").json()

        assert body == {"items": [], "total_count": 0, "source": "cache"}
        linear.fetch_page.assert_not_awaited()


class TestBacklogLive:
    def test_live_fetch_before_first_sync(self, client, linear):
        linear.fetch_page.return_value = IssuePage(
            records=[make_issue(), make_issue(id="i-2", identifier="VIX-2", priority=1)],
            page_info=PageInfo(has_next_page=True, end_cursor="c1"),
        )

        resp = client.get("/backlog")

        assert resp.status_code == 200
        body = resp.json()
        assert body["source"] == "live"
        assert [i["identifier"] for i in body["items"]] == ["VIX-2", "VIX-1"]
        linear.fetch_page.assert_awaited_once_with("proj-1", page_size=50)

    def test_live_fetch_after_cache_cleared(self, client, linear):
        client.post("/sync/trigger")
        client.delete("/sync/cache")
        linear.fetch_page.reset_mock()

        body = client.get("/backlog").json()

        assert body["source"] == "live"
        linear.fetch_page.assert_awaited_once()

    def test_missing_project_is_503(self, client, settings):
        settings.linear_project_id = None
        resp = client.get("/backlog")
        assert resp.status_code == 503
        assert resp.json()["detail"]["code"] == "CONFIG_ERROR"

    def test_auth_failure_is_502(self, client, linear):
        linear.fetch_page.side_effect = LinearApiError(
            "Unauthorized", LinearApiErrorKind.AUTHENTICATION_ERROR, status_code=401
        )
        resp = client.get("/backlog")
        assert resp.status_code == 502
        assert resp.json()["detail"]["code"] == "AUTH_FAILED"

    def test_network_failure_is_502(self, client, linear):
        linear.fetch_page.side_effect = LinearNetworkError("connection refused")
        resp = client.get("/backlog")
        assert resp.status_code == 502
        assert resp.json()["detail"]["code"] == "API_UNAVAILABLE"
