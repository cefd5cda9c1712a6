"""Async NewsAPI.org ingestion adapter.

Uses ``/v2/everything`` whenever a query or date range is given and
``/v2/top-headlines`` for category-only browsing.  One best-effort
request per call; failures are logged and yield an empty list.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ._http import log_fetch_warning, raise_for_status, safe_json
from .common_types import FEED_NEWSAPI, Article
from .errors import ProviderError
from .normalize import normalize_newsapi

logger = logging.getLogger(__name__)

NEWSAPI_BASE = "https://newsapi.org/v2"
DEFAULT_QUERY = "finance OR business OR stocks OR markets"
DEFAULT_CATEGORY = "business"


class NewsApiAdapter:
    """Async adapter for the NewsAPI everything / top-headlines endpoints."""

    feed_source = FEED_NEWSAPI

    def __init__(self, api_key: str, timeout_s: float = 10.0) -> None:
        self.api_key = api_key
        self.client = httpx.AsyncClient(timeout=timeout_s)

    def _build_request(
        self,
        query: str | None,
        category: str | None,
        page: int,
        from_: str | None,
        to: str | None,
        sort_by: str,
        page_size: int,
    ) -> tuple[str, dict[str, Any]]:
        """Pick the endpoint and its params."""
        query = (query or "").strip()
        if query or from_ or to:
            params: dict[str, Any] = {
                "q": query or category or DEFAULT_QUERY,
                "page": page or 1,
                "pageSize": page_size,
                "sortBy": sort_by or "publishedAt",
                "language": "en",
                "apiKey": self.api_key,
            }
            if from_:
                params["from"] = from_
            if to:
                params["to"] = to
            return f"{NEWSAPI_BASE}/everything", params

        return f"{NEWSAPI_BASE}/top-headlines", {
            "category": category or DEFAULT_CATEGORY,
            "country": "us",
            "page": page or 1,
            "pageSize": page_size,
            "apiKey": self.api_key,
        }

    async def fetch(
        self,
        query: str | None,
        *,
        category: str | None = None,
        page: int = 1,
        from_: str | None = None,
        to: str | None = None,
        sort_by: str = "publishedAt",
        max_articles: int = 10,
    ) -> list[Article]:
        if not self.api_key:
            logger.warning("NEWS_API_KEY not configured, skipping NewsAPI")
            return []

        url, params = self._build_request(query, category, page, from_, to, sort_by, max_articles)
        try:
            r = await self.client.get(url, params=params)
            raise_for_status(r)
            data = safe_json(r, "NewsAPI")
            if not isinstance(data, dict):
                raise ProviderError(
                    f"NewsAPI returned {type(data).__name__} instead of object",
                    provider=FEED_NEWSAPI,
                )
            if data.get("status") == "error":
                raise ProviderError(
                    f"NewsAPI error {data.get('code')!r}: {data.get('message')!r}",
                    provider=FEED_NEWSAPI,
                )
            items = data.get("articles") or []
            articles = [normalize_newsapi(it) for it in items if isinstance(it, dict)]
        except Exception as exc:
            log_fetch_warning("NewsAPI", exc)
            return []

        # NewsAPI occasionally ignores pageSize; cap after receipt.
        limited = articles[:max_articles]
        logger.info(
            "NewsAPI returned %d articles, limited to %d", len(articles), len(limited),
        )
        return limited

    async def aclose(self) -> None:
        await self.client.aclose()
