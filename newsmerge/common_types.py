"""Canonical article schema shared across all providers and the store.

Every adapter (GNews, NewsAPI, Google News RSS) normalises its raw payload
into an ``Article`` before it reaches the dedup engine or the store.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

# Provider tags, in the fixed order used when merging result sets.
FEED_GNEWS = "gnews"
FEED_NEWSAPI = "newsapi"
FEED_GOOGLE_RSS = "googlerss"
ALL_FEED_SOURCES: tuple[str, ...] = (FEED_GNEWS, FEED_NEWSAPI, FEED_GOOGLE_RSS)


def resolve_sources(sources: str | Iterable[str] | None) -> frozenset[str]:
    """Normalise a provider selection to a lowercase tag set.

    ``None`` or empty means "no restriction" and yields an empty set.
    Accepts a list of tags or a single comma-separated string.
    """
    if not sources:
        return frozenset()
    if isinstance(sources, str):
        parts: Iterable[Any] = sources.split(",")
    else:
        parts = sources
    return frozenset(str(s).strip().lower() for s in parts if str(s).strip())


@dataclass
class ArticleSource:
    """Publisher attribution as reported by the provider."""

    id: str | None = None
    name: str = "Unknown"


@dataclass
class Article:
    """Provider-agnostic news article."""

    url: str
    title: str
    source: ArticleSource = field(default_factory=ArticleSource)
    author: str | None = None
    description: str | None = None
    url_to_image: str | None = None
    published_at: str | None = None  # ISO-8601 UTC
    content: str | None = None
    feed_source: str | None = None  # "gnews" | "newsapi" | "googlerss"
    searched_by: str | None = None  # comma-joined tickers / keywords

    # ── Ingestion bookkeeping (set by the store) ────────────────
    last_scraped_at: str | None = None
    scrape_count: int | None = None

    # ── Enrichment (owned by the external pipeline) ─────────────
    summary_enriched: str | None = None
    summary_short: str | None = None
    summary_medium: str | None = None
    summary_long: str | None = None
    why_it_matters: str | None = None
    personalized_teaser: str | None = None
    personalized_title: str | None = None
    relevance_scores: dict[str, float] = field(default_factory=dict)
    triage_reason: str | None = None
    triage_score: float | None = None
    should_enrich: bool | None = None
    status: str | None = None
    impact_score: float | None = None
    profile_adjusted_score: float | None = None
    final_rank_score: float | None = None
    event_type: str | None = None
    sentiment: float | None = None
    sentiment_label: str | None = None
    risk_score: float | None = None
    opportunity_score: float | None = None
    volatility_score: float | None = None
    matched_tickers: list[str] = field(default_factory=list)
    matched_sectors: list[str] = field(default_factory=list)
    matched_holdings: list[str] = field(default_factory=list)
    is_primary_in_cluster: bool = False
    cluster_id: str | None = None

    # ── Convenience ─────────────────────────────────────────────

    @property
    def is_valid(self) -> bool:
        """Minimal sanity check before the store accepts the article."""
        return bool(
            isinstance(self.url, str) and self.url.strip()
            and isinstance(self.title, str) and self.title.strip()
        )

    def copy(self, **changes: Any) -> "Article":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Base consumer-facing shape (camelCase keys)."""
        return {
            "source": asdict(self.source),
            "author": self.author,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "urlToImage": self.url_to_image,
            "publishedAt": self.published_at,
            "content": self.content,
            "feedSource": self.feed_source,
            "searchedBy": self.searched_by,
        }


@dataclass(frozen=True)
class Holding:
    """A tracked security, used to build search queries and gate reads."""

    ticker: str
    label: str | None = None
    notes: str | None = None

    @classmethod
    def coerce(cls, value: "Holding | Mapping[str, Any] | str") -> "Holding":
        """Accept a ``Holding``, a ``{"ticker": ...}`` mapping or a bare ticker."""
        if isinstance(value, Holding):
            return value
        if isinstance(value, str):
            return cls(ticker=value)
        if isinstance(value, Mapping) and value.get("ticker"):
            return cls(
                ticker=str(value["ticker"]),
                label=value.get("label") or None,
                notes=value.get("notes") or None,
            )
        raise ValueError(f"Not a holding: {value!r}")

    @property
    def symbol(self) -> str:
        return self.ticker.strip().upper()


@dataclass(frozen=True)
class SaveResult:
    """Outcome of one ``ArticleStore.upsert_batch`` call."""

    saved: int
    skipped: int


def coerce_holdings(values: Iterable[Any] | None) -> list[Holding]:
    """``Holding.coerce`` each value; malformed or blank entries are dropped.

    Order is kept and repeated symbols collapse to their first occurrence.
    """
    holdings: dict[str, Holding] = {}
    for value in values or []:
        try:
            h = Holding.coerce(value)
        except ValueError as exc:
            logger.warning("Ignoring malformed holding: %s", exc)
            continue
        if h.symbol and h.symbol not in holdings:
            holdings[h.symbol] = h
    return list(holdings.values())
