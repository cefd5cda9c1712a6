"""Global configuration for the newsmerge ingestion engine.

Covers GNews, NewsAPI and Google News RSS, plus the SQLite article store.
All tunables can be overridden via environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .common_types import FEED_GNEWS, FEED_GOOGLE_RSS, FEED_NEWSAPI

DEFAULT_RSS_USER_AGENT = (
    "newsmerge/1.0 (+financial news aggregator; Google News RSS reader)"
)


def _env_float(key: str, default: float) -> float:
    """Read an env var as float, returning *default* on parse failure."""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_int(key: str, default: int) -> int:
    """Read an env var as int, returning *default* on parse failure."""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


@dataclass(frozen=True)
class Config:
    """Central configuration – one instance per process.

    Environment variables are read at **instantiation** time (not module
    import time) so callers can set them programmatically before
    creating a ``Config``.
    """

    # ── Credentials (repr=False to prevent accidental logging) ──
    gnews_api_key: str = field(default_factory=lambda: os.getenv("GNEWS_API_KEY", ""), repr=False)
    newsapi_api_key: str = field(default_factory=lambda: os.getenv("NEWS_API_KEY", ""), repr=False)

    # ── Feature flags ───────────────────────────────────────────
    enable_gnews: bool = field(default_factory=lambda: os.getenv("ENABLE_GNEWS", "1") == "1")
    enable_newsapi: bool = field(default_factory=lambda: os.getenv("ENABLE_NEWSAPI", "1") == "1")
    enable_google_rss: bool = field(default_factory=lambda: os.getenv("ENABLE_GOOGLE_RSS", "1") == "1")

    # ── Provider requests ───────────────────────────────────────
    timeout_s: float = field(default_factory=lambda: _env_float("NEWS_TIMEOUT_S", 10.0))
    max_articles_per_source: int = field(default_factory=lambda: _env_int("MAX_ARTICLES_PER_SOURCE", 10))
    rss_user_agent: str = field(default_factory=lambda: os.getenv("RSS_USER_AGENT", DEFAULT_RSS_USER_AGENT))

    # ── State ───────────────────────────────────────────────────
    sqlite_path: str = field(default_factory=lambda: os.getenv("SQLITE_PATH", "newsmerge/articles.db"))

    # ── Retention ───────────────────────────────────────────────
    keep_articles_days: int = field(default_factory=lambda: _env_int("KEEP_ARTICLES_DAYS", 30))

    # ── Feed ────────────────────────────────────────────────────
    feed_min_score: float = field(default_factory=lambda: _env_float("FEED_MIN_SCORE", 40.0))
    feed_limit: int = field(default_factory=lambda: _env_int("FEED_LIMIT", 100))

    # ── Derived helpers ─────────────────────────────────────────

    @property
    def active_sources(self) -> list[str]:
        """Enabled provider tags, in merge order."""
        sources: list[str] = []
        if self.enable_gnews:
            sources.append(FEED_GNEWS)
        if self.enable_newsapi:
            sources.append(FEED_NEWSAPI)
        if self.enable_google_rss:
            sources.append(FEED_GOOGLE_RSS)
        return sources
