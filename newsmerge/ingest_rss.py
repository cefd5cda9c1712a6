"""Async Google News RSS ingestion adapter.

Fetches ``news.google.com/rss/search`` with a descriptive User-Agent,
parses the body with feedparser (RSS 2.0 items and Atom entries alike)
and maps each entry through ``normalize_rss_entry``.

Google News links are obfuscated redirect URLs; they are stored as-is.
The feed has no date-range parameter, so ``from_``/``to`` are ignored.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping
from urllib.parse import quote_plus

import feedparser
import httpx

from ._http import log_fetch_warning, raise_for_status
from .common_types import FEED_GOOGLE_RSS, Article
from .config import DEFAULT_RSS_USER_AGENT
from .errors import ProviderError
from .normalize import normalize_rss_entry

logger = logging.getLogger(__name__)

GOOGLE_RSS_SEARCH_URL = "https://news.google.com/rss/search"
_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


def build_rss_url(query: str) -> str:
    return (
        f"{GOOGLE_RSS_SEARCH_URL}?q={quote_plus(query)}"
        "&hl=en&gl=US&ceid=US:en"
    )


def articles_from_entries(entries: Iterable[Mapping[str, Any]], max_articles: int) -> list[Article]:
    """Normalise feed entries, skipping ones without url or title."""
    articles: list[Article] = []
    for entry in list(entries)[:max_articles]:
        try:
            article = normalize_rss_entry(entry)
        except Exception as exc:
            logger.warning("Google RSS: could not normalise entry: %s", exc)
            continue
        if not (article.url and article.title):
            logger.debug("Google RSS: skipping entry without url or title")
            continue
        articles.append(article)
    return articles


class GoogleRssAdapter:
    """Async adapter for Google News RSS search."""

    feed_source = FEED_GOOGLE_RSS

    def __init__(self, timeout_s: float = 10.0, user_agent: str = DEFAULT_RSS_USER_AGENT) -> None:
        self.client = httpx.AsyncClient(
            timeout=timeout_s,
            follow_redirects=True,
            headers={"User-Agent": user_agent, "Accept": _ACCEPT},
        )

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
        search = (query or "").strip() or category or ""
        if not search:
            logger.debug("Google RSS: empty query, skipping")
            return []
        if from_ or to:
            logger.debug("Google RSS: date filtering not supported by the feed, ignoring")

        url = build_rss_url(search)
        try:
            r = await self.client.get(url)
            raise_for_status(r)
            parsed = feedparser.parse(r.text)
            entries = getattr(parsed, "entries", None) or []
            if not entries and getattr(parsed, "bozo", False):
                raise ProviderError(
                    f"Google RSS returned unparseable feed: {parsed.get('bozo_exception')}",
                    provider=FEED_GOOGLE_RSS,
                )
            articles = articles_from_entries(entries, max_articles)
        except Exception as exc:
            log_fetch_warning("Google RSS", exc)
            return []

        logger.info(
            "Google RSS returned %d entries, kept %d for %r",
            len(entries), len(articles), search,
        )
        return articles

    async def aclose(self) -> None:
        await self.client.aclose()
