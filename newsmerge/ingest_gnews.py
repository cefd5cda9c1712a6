"""Async GNews ingestion adapter.

Queries ``/api/v4/search`` once per call (best effort, no retries) and
maps ``articles[]`` through the shared normalisation layer.

Never raises to the caller: a missing key, transport error or malformed
payload is logged and yields an empty list.

A 429/403 or a "rate limit" error disables the adapter until
``reset_rate_limit`` is called, normally at the start of the next run.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ._http import log_fetch_warning, raise_for_status, safe_json
from .common_types import FEED_GNEWS, Article
from .errors import ProviderError
from .normalize import normalize_gnews

logger = logging.getLogger(__name__)

GNEWS_SEARCH_URL = "https://gnews.io/api/v4/search"
DEFAULT_QUERY = "finance business"
_RATE_LIMIT_STATUSES = (403, 429)


def _is_rate_limit(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in _RATE_LIMIT_STATUSES:
        return True
    return "rate limit" in str(exc).lower()


class GNewsAdapter:
    """Async adapter for the GNews search endpoint."""

    feed_source = FEED_GNEWS

    def __init__(self, api_key: str, timeout_s: float = 10.0) -> None:
        self.api_key = api_key
        self.client = httpx.AsyncClient(timeout=timeout_s)
        self.rate_limited = False

    def reset_rate_limit(self) -> None:
        if self.rate_limited:
            logger.info("GNews rate-limit flag cleared")
        self.rate_limited = False

    def _build_params(
        self,
        query: str | None,
        category: str | None,
        page: int,
        from_: str | None,
        to: str | None,
        max_articles: int,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "q": (query or "").strip() or category or DEFAULT_QUERY,
            "token": self.api_key,
            "lang": "en",
            "max": max_articles,
        }
        if from_:
            params["from"] = from_
        if to:
            params["to"] = to
        if page and page > 1:
            params["page"] = page
        return params

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
        """GET /api/v4/search → at most *max_articles* articles."""
        if not self.api_key:
            logger.warning("GNEWS_API_KEY not configured, skipping GNews")
            return []
        if self.rate_limited:
            logger.debug("GNews skipped: rate-limited (disabled for this run)")
            return []

        params = self._build_params(query, category, page, from_, to, max_articles)
        logger.debug("GNews fetch q=%r page=%d max=%d", params["q"], page, max_articles)
        try:
            r = await self.client.get(GNEWS_SEARCH_URL, params=params)
            raise_for_status(r)
            data = safe_json(r, "GNews")
            if not isinstance(data, dict):
                raise ProviderError(
                    f"GNews returned {type(data).__name__} instead of object",
                    provider=FEED_GNEWS,
                )
            items = data.get("articles") or []
            articles = [normalize_gnews(it) for it in items if isinstance(it, dict)]
        except Exception as exc:
            if _is_rate_limit(exc):
                self.rate_limited = True
                logger.warning("GNews rate limit detected, disabling GNews for the rest of the run")
            log_fetch_warning("GNews", exc)
            return []

        logger.info("GNews returned %d articles for %r", len(articles), params["q"])
        return articles[:max_articles]

    async def aclose(self) -> None:
        await self.client.aclose()
