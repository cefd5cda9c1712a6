"""Multi-source fetch: GNews + NewsAPI + Google RSS → Dedupe → Store → Sort.

``NewsFetcher.fetch_merged`` fans one query out to every enabled provider
concurrently, collapses cross-provider duplicates, persists the batch and
returns it newest first.  ``NewsFetcher.fetch_for_holdings`` runs one
``fetch_merged`` per holding, all at once, and merges the results so an
article found under several tickers records all of them.

All collaborators (store, adapters, config) are injected so the fetcher
can be exercised against an in-memory store and mocked adapters.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional, Protocol

from .common_types import (
    ALL_FEED_SOURCES,
    FEED_GNEWS,
    FEED_GOOGLE_RSS,
    FEED_NEWSAPI,
    Article,
    Holding,
    coerce_holdings,
    resolve_sources,
)
from .config import Config
from .dedup import deduplicate, deduplicate_with_context, sort_by_published
from .ingest_gnews import GNewsAdapter
from .ingest_newsapi import NewsApiAdapter
from .ingest_rss import GoogleRssAdapter
from .store_sqlite import ArticleStore

logger = logging.getLogger(__name__)

# Notes contribute to a holding's query only as a short phrase.
_MAX_NOTE_WORDS = 3
_MIN_NOTE_WORD_LEN = 4


class ProviderAdapter(Protocol):
    feed_source: str

    async def fetch(
        self,
        query: str | None,
        *,
        category: str | None = ...,
        page: int = ...,
        from_: str | None = ...,
        to: str | None = ...,
        sort_by: str = ...,
        max_articles: int = ...,
    ) -> list[Article]: ...

    async def aclose(self) -> None: ...


def build_holding_query(holding: Holding | Mapping[str, Any] | str) -> str:
    """``TICKER [OR label] [OR note words]`` for one holding.

    Note words (longer than 3 chars) are added only when there are one to
    three of them; longer notes would drown the query in noise.
    """
    h = Holding.coerce(holding)
    parts = [h.symbol]
    if h.label and h.label.strip():
        parts.append(h.label.strip())
    if h.notes:
        words = [w for w in h.notes.split() if len(w) >= _MIN_NOTE_WORD_LEN]
        if 0 < len(words) <= _MAX_NOTE_WORDS:
            parts.append(" ".join(words))
    return " OR ".join(parts)


async def _no_articles() -> list[Article]:
    return []


class NewsFetcher:
    """Fetch orchestrator over the three provider adapters."""

    def __init__(
        self,
        store: Optional[ArticleStore],
        *,
        gnews: Optional[ProviderAdapter] = None,
        newsapi: Optional[ProviderAdapter] = None,
        rss: Optional[ProviderAdapter] = None,
        config: Optional[Config] = None,
    ) -> None:
        self.store = store
        self.cfg = config or Config()
        # Declared order = concatenation order = dedup precedence.
        self.adapters: dict[str, Optional[ProviderAdapter]] = {
            FEED_GNEWS: gnews,
            FEED_NEWSAPI: newsapi,
            FEED_GOOGLE_RSS: rss,
        }

    @classmethod
    def from_config(cls, cfg: Config, store: Optional[ArticleStore]) -> "NewsFetcher":
        """Build real adapters for every provider enabled in *cfg*."""
        return cls(
            store,
            gnews=GNewsAdapter(cfg.gnews_api_key, cfg.timeout_s) if cfg.enable_gnews else None,
            newsapi=NewsApiAdapter(cfg.newsapi_api_key, cfg.timeout_s) if cfg.enable_newsapi else None,
            rss=GoogleRssAdapter(cfg.timeout_s, cfg.rss_user_agent) if cfg.enable_google_rss else None,
            config=cfg,
        )

    async def __aenter__(self) -> "NewsFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for adapter in self.adapters.values():
            if adapter is None:
                continue
            try:
                await adapter.aclose()
            except Exception as exc:
                logger.debug("Adapter %s close failed: %s", adapter.feed_source, exc)

    def reset_rate_limits(self) -> None:
        """Re-enable adapters that disabled themselves after a rate limit."""
        for adapter in self.adapters.values():
            reset = getattr(adapter, "reset_rate_limit", None)
            if reset is not None:
                reset()

    # ── Source selection ────────────────────────────────────────

    def enabled_sources(self, sources: str | Iterable[str] | None = None) -> list[str]:
        """Provider tags that will actually be queried, in merge order."""
        requested = resolve_sources(sources)
        active = set(self.cfg.active_sources)
        return [
            tag for tag in ALL_FEED_SOURCES
            if self.adapters.get(tag) is not None
            and tag in active
            and (not requested or tag in requested)
        ]

    # ── Single query ────────────────────────────────────────────

    async def fetch_merged(
        self,
        query: str | None,
        *,
        category: str | None = None,
        page: int = 1,
        from_: str | None = None,
        to: str | None = None,
        sort_by: str = "publishedAt",
        sources: str | Iterable[str] | None = None,
        searched_by: str | None = None,
        source_limits: Mapping[str, int] | None = None,
    ) -> list[Article]:
        """Fetch *query* from all enabled providers and merge the results.

        ``source_limits`` maps a provider tag to its ``max_articles``; a
        limit of 0 disables that provider for this call.  Persistence
        failures are logged and the fetched batch is still returned.
        """
        enabled = set(self.enabled_sources(sources))
        limits = dict(source_limits or {})

        tags: list[str] = []
        calls = []
        for tag in ALL_FEED_SOURCES:
            limit = int(limits.get(tag, self.cfg.max_articles_per_source))
            adapter = self.adapters.get(tag)
            tags.append(tag)
            if adapter is not None and tag in enabled and limit > 0:
                calls.append(adapter.fetch(
                    query,
                    category=category,
                    page=page,
                    from_=from_,
                    to=to,
                    sort_by=sort_by,
                    max_articles=limit,
                ))
            else:
                calls.append(_no_articles())

        results = await asyncio.gather(*calls, return_exceptions=True)

        merged: list[Article] = []
        counts: dict[str, int] = {}
        for tag, result in zip(tags, results):
            if isinstance(result, BaseException):
                logger.warning("%s fetch raised unexpectedly: %s", tag, result)
                result = []
            counts[tag] = len(result)
            merged.extend(a if a.feed_source else a.copy(feed_source=tag) for a in result)

        unique = deduplicate(merged)
        logger.info(
            "fetch_merged q=%r: %s → %d unique (from %d)",
            query, counts, len(unique), len(merged),
        )

        if unique and self.store is not None:
            try:
                saved = self.store.upsert_batch(unique, searched_by)
                logger.info(
                    "Saved %d article(s), skipped %d%s",
                    saved.saved, saved.skipped,
                    f" (searched by: {searched_by})" if searched_by else "",
                )
            except Exception as exc:
                logger.error("Error saving articles to store: %s", exc)

        return sort_by_published(unique)

    # ── Holdings fan-out ────────────────────────────────────────

    async def fetch_for_holdings(
        self,
        holdings: Iterable[Holding | Mapping[str, Any] | str],
        *,
        page: int = 1,
        from_: str | None = None,
        to: str | None = None,
        sources: str | Iterable[str] | None = None,
        source_limits: Mapping[str, int] | None = None,
    ) -> list[Article]:
        """One concurrent ``fetch_merged`` per holding, merged by URL."""
        self.reset_rate_limits()
        parsed = coerce_holdings(holdings)
        if not parsed:
            return []

        async def _for_holding(h: Holding) -> list[Article]:
            ticker = h.symbol
            query = build_holding_query(h)
            logger.debug("Fetching for %s with query %r", ticker, query)
            articles = await self.fetch_merged(
                query,
                page=page,
                from_=from_,
                to=to,
                sort_by="publishedAt",
                sources=sources,
                searched_by=ticker,
                source_limits=source_limits,
            )
            return [a.copy(searched_by=ticker) for a in articles]

        results = await asyncio.gather(*(_for_holding(h) for h in parsed), return_exceptions=True)

        flat: list[Article] = []
        for h, result in zip(parsed, results):
            if isinstance(result, BaseException):
                logger.warning("Holding %s fetch failed: %s", h.symbol, result)
                continue
            flat.extend(result)

        unique = deduplicate_with_context(flat)
        logger.info(
            "fetch_for_holdings: %d holdings → %d unique (from %d)",
            len(parsed), len(unique), len(flat),
        )
        return sort_by_published(unique)
