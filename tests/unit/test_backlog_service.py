"""Tests for backlog ordering and the cache/live read path."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from backlog.linear.client import IssuePage, PageInfo
from backlog.linear.errors import LinearConfigError
from backlog.services.backlog import BacklogService, sort_backlog_items


class TestSortBacklogItems:
    def test_priority_ascending_with_none_last(self, make_item):
        items = [
            make_item(id="none", priority=0),
            make_item(id="low", priority=4),
            make_item(id="urgent", priority=1),
            make_item(id="normal", priority=3),
        ]
        assert [i.id for i in sort_backlog_items(items)] == ["urgent", "normal", "low", "none"]

    def test_ties_broken_by_sort_order(self, make_item):
        items = [
            make_item(id="b", priority=2, sort_order=5.0),
            make_item(id="a", priority=2, sort_order=-1.0),
        ]
        assert [i.id for i in sort_backlog_items(items)] == ["a", "b"]

    def test_does_not_mutate_input(self, make_item):
        items = [make_item(id="low", priority=4), make_item(id="high", priority=2)]
        sort_backlog_items(items)
        assert [i.id for i in items] == ["low", "high"]


class TestBacklogService:
    @pytest.mark.asyncio
    async def test_serves_cache_when_populated(self, make_item):
        sync_service = MagicMock()
        sync_service.get_cached_items.return_value = [make_item()]
        client = AsyncMock()
        service = BacklogService(sync_service, client)

        items, source = await service.get_items("proj-1")

        assert source == "cache"
        assert len(items) == 1
        client.fetch_page.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_cache_list_is_still_cache(self):
        sync_service = MagicMock()
        sync_service.get_cached_items.return_value = []
        service = BacklogService(sync_service, AsyncMock())

        items, source = await service.get_items("proj-1")

        assert (items, source) == ([], "cache")

    @pytest.mark.asyncio
    async def test_live_fetch_before_first_sync(self):
        sync_service = MagicMock()
        sync_service.get_cached_items.return_value = None
        client = AsyncMock()
        client.fetch_page = AsyncMock(return_value=IssuePage(
            records=[{
                "id": "i-1", "identifier": "VIX-1", "title": "One", "priority": 0,
                "createdAt": "2026-01-01T00:00:00Z", "updatedAt": "2026-01-01T00:00:00Z",
            }, {
                "id": "i-2", "identifier": "VIX-2", "title": "Two", "priority": 1,
                "createdAt": "2026-01-01T00:00:00Z", "updatedAt": "2026-01-01T00:00:00Z",
            }],
            page_info=PageInfo(has_next_page=True, end_cursor="c"),
        ))
        service = BacklogService(sync_service, client)

        items, source = await service.get_items("proj-1")

        assert source == "live"
        assert [i.id for i in items] == ["i-2", "i-1"]
        client.fetch_page.assert_awaited_once_with("proj-1", page_size=50)

    @pytest.mark.asyncio
    async def test_live_fetch_requires_project(self):
        sync_service = MagicMock()
        sync_service.get_cached_items.return_value = None
        service = BacklogService(sync_service, AsyncMock())

        with pytest.raises(LinearConfigError):
            await service.get_items(None)
