"""Backlog ordering and the read path used by the /backlog route."""
import logging
from typing import List, Optional, Tuple

from backlog.linear.client import LinearClient
from backlog.linear.errors import LinearConfigError
from backlog.linear.transformers import transform_all
from backlog.models.backlog import BacklogItem

logger = logging.getLogger(__name__)

LIVE_PAGE_SIZE = 50


def _priority_rank(priority: int) -> int:
    # "None" (0) sorts after "Low" (4)
    return 5 if priority == 0 else priority


def sort_backlog_items(items: List[BacklogItem]) -> List[BacklogItem]:
    """Order by priority (Urgent first, None last), then Linear's sortOrder.

    Returns a new list; the input is not mutated.
    """
    return sorted(items, key=lambda i: (_priority_rank(i.priority), i.sort_order))


class BacklogService:
    """Serves backlog items from the sync cache, falling back to a live fetch."""

    def __init__(self, sync_service, client: LinearClient):
        self.sync_service = sync_service
        self.client = client

    async def get_items(self, project_id: Optional[str]) -> Tuple[List[BacklogItem], str]:
        """
        Return (items, source) where source is "cache" or "live".

        Raises:
            LinearConfigError: cache is empty and no project is configured.
            Any Linear error from the live fetch.
        """
        cached = self.sync_service.get_cached_items()
        if cached is not None:
            return cached, "cache"

        if not project_id:
            raise LinearConfigError(
                "LINEAR_PROJECT_ID is not configured. Set it in your .env file."
            )

        logger.debug("Backlog cache empty, fetching live from Linear")
        page = await self.client.fetch_page(project_id, page_size=LIVE_PAGE_SIZE)
        result = transform_all(page.records)
        return sort_backlog_items(result.items), "live"
