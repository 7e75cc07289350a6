"""
Brave web search client.

``search`` never raises: a missing key, a non-2xx answer or a transport
error all produce an empty list. The caller bounds each call with its own
deadline.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from shared.llm_adapter.models import SearchResult
from shared.observability.metrics import augmentation_fetches

logger = logging.getLogger(__name__)

SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
MAX_COUNT = 5


class BraveSearchClient:

    def __init__(self, api_key: str, http_client: httpx.AsyncClient) -> None:
        self._api_key = api_key
        self._http = http_client

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def search(self, query: str, count: int = MAX_COUNT) -> list[SearchResult]:
        if not self._api_key:
            logger.error("Brave API key not configured; skipping web search")
            return []

        params = {
            "q": query,
            "count": str(max(1, min(count, MAX_COUNT))),
            "search_lang": "en",
        }
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
            "X-Subscription-Token": self._api_key,
        }
        logger.info("Brave search: %r", query[:80])

        try:
            response = await self._http.get(SEARCH_URL, params=params, headers=headers)
            if not response.is_success:
                logger.error(
                    "Brave Search API error %d: %s",
                    response.status_code, response.text[:300],
                )
                augmentation_fetches.labels(kind="search", outcome="error").inc()
                return []
            data = response.json()
        except Exception:
            logger.exception("Brave search request failed")
            augmentation_fetches.labels(kind="search", outcome="error").inc()
            return []

        results = [_to_result(item) for item in _web_results(data)]
        augmentation_fetches.labels(kind="search", outcome="ok").inc()
        logger.info("Brave returned %d result(s)", len(results))
        return results


def _web_results(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, dict):
        return []
    web = data.get("web") or {}
    results = web.get("results") if isinstance(web, dict) else None
    if not isinstance(results, list):
        return []
    return [r for r in results if isinstance(r, dict)]


def _to_result(item: dict[str, Any]) -> SearchResult:
    return SearchResult(
        title=item.get("title") or "No title",
        url=item.get("url") or "",
        snippet=item.get("description") or "No description available",
    )
