"""Shared plumbing for Graph application services.

Every page fetch runs through the ResiliencePipeline with its own cache
key, so a throttled or unavailable Graph can be answered from cache page
by page.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from graphguard.domain.models.common import ResourcePath, make_cache_key
from graphguard.domain.models.graph import GraphPage
from graphguard.infrastructure.graph.graph_client import GraphClient, iterate_pages
from graphguard.infrastructure.resilience.pipeline import ResiliencePipeline

logger = logging.getLogger(__name__)

# Graph caps $top at 999 for directory objects
MAX_PAGE_SIZE = 999


def path_segment(value: str) -> str:
    """Percent-encodes an id or UPN for use as one URL path segment.

    Guest UPNs contain '#EXT#', which would otherwise start a URL fragment.
    """
    return quote(value, safe='@')


class GraphService:
    """Base for services that read Graph collections through the pipeline."""

    def __init__(self, graph_client: GraphClient, pipeline: ResiliencePipeline):
        self.graph_client = graph_client
        self.pipeline = pipeline

    async def _get_object(self, path: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.pipeline.execute(
            self.graph_client.get, ResourcePath(path), params=params,
            endpoint_name=endpoint,
            cache_key=make_cache_key(endpoint, path, sorted((params or {}).items())),
        )

    async def _collect(
        self,
        path: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        max_items: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Gathers collection items page by page up to max_items."""
        async def fetch_page(page_path: str, page_params: Optional[Dict[str, Any]]) -> GraphPage:
            return await self.pipeline.execute(
                self.graph_client.get_page, ResourcePath(page_path), params=page_params,
                endpoint_name=endpoint,
                cache_key=make_cache_key(endpoint, page_path, sorted((page_params or {}).items())),
            )

        items = [item async for item in iterate_pages(fetch_page, path, params=params, max_items=max_items)]
        logger.debug(f"{endpoint}: collected {len(items)} items")
        return items

    @staticmethod
    def _page_size(top: Optional[int]) -> int:
        if top is None:
            return 100
        if top < 1:
            raise ValueError(f"top must be >= 1, got {top}")
        return min(top, MAX_PAGE_SIZE)
