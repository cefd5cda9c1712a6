"""SQLite-backed article store: merge-on-upsert writes, filtered reads.

One ``articles`` table keyed by ``url``.  The ingestion path owns the
content/provenance columns; the enrichment/triage/ranking columns belong
to an external pipeline and are never touched by ``upsert_batch``.

Uses WAL mode + NORMAL synchronous for write throughput while retaining
crash safety.  The connection runs in autocommit mode; multi-statement
writes open an explicit IMMEDIATE transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Sequence

from .codec import encode_scores, encode_string_set
from .common_types import Article, SaveResult, coerce_holdings, resolve_sources
from .errors import StoreError
from .normalize import format_iso, now_iso, parse_published
from .shaping import row_to_article, shape_feed_row, shape_row

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS articles (
  url TEXT PRIMARY KEY,
  source_id TEXT,
  source_name TEXT NOT NULL,
  author TEXT,
  title TEXT NOT NULL,
  description TEXT,
  url_to_image TEXT,
  published_at TEXT NOT NULL,
  content TEXT,
  searched_by TEXT,
  feed_source TEXT,
  last_scraped_at TEXT,
  scrape_count INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,

  summary_enriched TEXT,
  summary_short TEXT,
  summary_medium TEXT,
  summary_long TEXT,
  why_it_matters TEXT,
  personalized_teaser TEXT,
  personalized_title TEXT,
  relevance_scores_json TEXT,
  triage_reason TEXT,
  triage_score REAL,
  should_enrich INTEGER,
  status TEXT,
  impact_score REAL,
  profile_adjusted_score REAL,
  final_rank_score REAL,
  event_type TEXT,
  sentiment REAL,
  sentiment_label TEXT,
  risk_score REAL,
  opportunity_score REAL,
  volatility_score REAL,
  matched_tickers TEXT,
  matched_sectors TEXT,
  matched_holdings TEXT,
  is_primary_in_cluster INTEGER DEFAULT 0,
  cluster_id TEXT
);
CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at);
CREATE INDEX IF NOT EXISTS idx_articles_feed_source ON articles(feed_source);
CREATE INDEX IF NOT EXISTS idx_articles_status ON articles(status);
CREATE INDEX IF NOT EXISTS idx_articles_final_rank_score ON articles(final_rank_score);
"""

# Merge policy for re-ingested URLs.  Enrichment columns are absent on
# purpose: only the pipeline writes them.
_UPSERT_SQL = """
INSERT INTO articles (
  url, source_id, source_name, author, title, description,
  url_to_image, published_at, content, searched_by, feed_source,
  last_scraped_at, scrape_count, created_at, updated_at
) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,1,?,?)
ON CONFLICT(url) DO UPDATE SET
  source_id = excluded.source_id,
  source_name = excluded.source_name,
  author = excluded.author,
  title = excluded.title,
  url_to_image = excluded.url_to_image,
  description = CASE
    WHEN COALESCE(excluded.description, '') != '' THEN excluded.description
    ELSE articles.description
  END,
  content = CASE
    WHEN COALESCE(excluded.content, '') != '' THEN excluded.content
    ELSE articles.content
  END,
  published_at = CASE
    WHEN COALESCE(excluded.published_at, '') != ''
      AND (COALESCE(articles.published_at, '') = ''
           OR excluded.published_at < articles.published_at)
    THEN excluded.published_at
    ELSE articles.published_at
  END,
  searched_by = CASE
    WHEN COALESCE(excluded.searched_by, '') = '' THEN articles.searched_by
    WHEN COALESCE(articles.searched_by, '') = '' THEN excluded.searched_by
    WHEN instr(articles.searched_by, excluded.searched_by) = 0
      THEN articles.searched_by || ',' || excluded.searched_by
    ELSE articles.searched_by
  END,
  feed_source = CASE
    WHEN COALESCE(excluded.feed_source, '') != ''
      AND COALESCE(articles.feed_source, '') = ''
    THEN excluded.feed_source
    ELSE articles.feed_source
  END,
  last_scraped_at = excluded.last_scraped_at,
  scrape_count = articles.scrape_count + 1,
  updated_at = excluded.updated_at
"""

# Columns the enrichment pipeline may write through ``apply_enrichment``.
ENRICHMENT_COLUMNS: frozenset[str] = frozenset({
    "summary_enriched", "summary_short", "summary_medium", "summary_long",
    "why_it_matters", "personalized_teaser", "personalized_title",
    "relevance_scores", "triage_reason", "triage_score", "should_enrich",
    "status", "impact_score", "profile_adjusted_score", "final_rank_score",
    "event_type", "sentiment", "sentiment_label", "risk_score",
    "opportunity_score", "volatility_score", "matched_tickers",
    "matched_sectors", "matched_holdings", "is_primary_in_cluster",
    "cluster_id",
})

FEED_STATUSES: tuple[str, ...] = ("personalized", "ranked")

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on old builds.
_IN_CHUNK = 500

# Whole-token match of ? inside the comma-separated searched_by list.
_TOKEN_MATCH_SQL = "instr(',' || COALESCE(searched_by, '') || ',', ',' || ? || ',') > 0"


def _trim(x: Any) -> str | None:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def _chunks(seq: Sequence[str], size: int = _IN_CHUNK) -> Iterable[Sequence[str]]:
    for i in range(0, len(seq), size):
        yield seq[i:i + size]


def _placeholders(n: int) -> str:
    return ",".join("?" * n)


def _tickers(holdings: Iterable[Any] | None) -> list[str]:
    return [h.symbol for h in coerce_holdings(holdings)]


def _escape_like(s: str) -> str:
    return s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ArticleStore:
    """Durable article table with merge-on-upsert and shaped reads."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.conn = sqlite3.connect(path, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute("PRAGMA synchronous=NORMAL;")
        self.conn.execute("PRAGMA busy_timeout=5000;")
        self.conn.executescript(SCHEMA)

    def __enter__(self) -> "ArticleStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Write path ──────────────────────────────────────────────

    def upsert_batch(
        self,
        articles: Iterable[Article],
        searched_by: Optional[str] = None,
    ) -> SaveResult:
        """Insert or merge *articles* in one IMMEDIATE transaction.

        Invalid articles (no url / no title) and rows that fail
        individually are counted as skipped; they never abort the batch.
        *searched_by*, when given, overrides each article's own value.
        Raises ``StoreError`` only if the transaction itself fails.
        """
        now = now_iso()
        saved = 0
        skipped = 0
        try:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                for article in articles:
                    try:
                        if not (isinstance(article, Article) and article.is_valid):
                            skipped += 1
                            logger.warning("Skipping invalid article: %r", getattr(article, "url", article))
                            continue
                        url = article.url.strip()
                        published_at = parse_published(article.published_at) or now
                        self.conn.execute(
                            _UPSERT_SQL,
                            (
                                url,
                                _trim(article.source.id),
                                _trim(article.source.name) or "Unknown",
                                _trim(article.author),
                                article.title.strip(),
                                _trim(article.description),
                                _trim(article.url_to_image),
                                published_at,
                                _trim(article.content),
                                _trim(searched_by) or _trim(article.searched_by),
                                _trim(article.feed_source),
                                now,
                                now,
                                now,
                            ),
                        )
                        saved += 1
                    except (
                        sqlite3.IntegrityError,
                        sqlite3.DataError,
                        sqlite3.InterfaceError,
                        sqlite3.ProgrammingError,
                        AttributeError,
                        TypeError,
                    ) as exc:
                        skipped += 1
                        logger.error("Error saving article %r: %s", getattr(article, "url", None), exc)
                self.conn.execute("COMMIT")
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
        except sqlite3.Error as exc:
            raise StoreError(f"upsert_batch failed: {exc}", operation="upsert_batch") from exc

        if skipped:
            logger.info("upsert_batch: saved %d articles, skipped %d", saved, skipped)
        return SaveResult(saved=saved, skipped=skipped)

    def apply_enrichment(self, url: str, **fields: Any) -> bool:
        """Write enrichment/triage/ranking columns for one article.

        This is the collaborator seam for the enrichment pipeline; only
        ``ENRICHMENT_COLUMNS`` are accepted.  Returns True if a row was
        updated.
        """
        unknown = set(fields) - ENRICHMENT_COLUMNS
        if unknown:
            raise ValueError(f"Not enrichment columns: {sorted(unknown)}")
        if not fields:
            return False

        columns: list[str] = []
        values: list[Any] = []
        for name, value in fields.items():
            if name == "relevance_scores":
                name, value = "relevance_scores_json", encode_scores(value)
            elif name in ("matched_tickers", "matched_sectors", "matched_holdings"):
                value = encode_string_set(value)
            elif name in ("should_enrich", "is_primary_in_cluster") and value is not None:
                value = 1 if value else 0
            columns.append(f"{name} = ?")
            values.append(value)
        columns.append("updated_at = ?")
        values.append(now_iso())

        cur = self.conn.execute(
            f"UPDATE articles SET {', '.join(columns)} WHERE url = ?",
            (*values, url),
        )
        return cur.rowcount > 0

    # ── Read path ───────────────────────────────────────────────

    def existing_urls(self, urls: Iterable[str]) -> set[str]:
        """Subset of *urls* already stored.  Advisory: empty set on failure."""
        wanted = list(dict.fromkeys(u for u in urls if u))
        if not wanted:
            return set()
        found: set[str] = set()
        try:
            for chunk in _chunks(wanted):
                rows = self.conn.execute(
                    f"SELECT url FROM articles WHERE url IN ({_placeholders(len(chunk))})",
                    tuple(chunk),
                ).fetchall()
                found.update(row["url"] for row in rows)
        except sqlite3.Error as exc:
            logger.error("Error checking existing articles: %s", exc)
            return set()
        return found

    def get_article(self, url: str) -> Article | None:
        """Raw, unshaped row as an ``Article`` (enrichment included)."""
        try:
            row = self.conn.execute("SELECT * FROM articles WHERE url = ?", (url,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error reading article %s: %s", url, exc)
            return None
        return row_to_article(dict(row)) if row else None

    def get_by_urls(self, urls: Iterable[str]) -> list[dict[str, Any]]:
        wanted = list(dict.fromkeys(u for u in urls if u))
        if not wanted:
            return []
        out: list[dict[str, Any]] = []
        try:
            for chunk in _chunks(wanted):
                rows = self.conn.execute(
                    f"SELECT * FROM articles WHERE url IN ({_placeholders(len(chunk))})",
                    tuple(chunk),
                ).fetchall()
                out.extend(shape_row(dict(row)) for row in rows)
        except sqlite3.Error as exc:
            logger.error("Error getting articles by url: %s", exc)
            return []
        return out

    @staticmethod
    def _narrow(
        sql: str,
        params: list[Any],
        *,
        sources: Any,
        from_: Optional[str],
        to: Optional[str],
    ) -> str:
        """Append feed_source and published_at range filters."""
        tags = resolve_sources(sources)
        if tags:
            sql += f" AND feed_source IN ({_placeholders(len(tags))})"
            params.extend(sorted(tags))
        if from_:
            sql += " AND published_at >= ?"
            params.append(parse_published(from_) or from_)
        if to:
            sql += " AND published_at <= ?"
            params.append(parse_published(to) or to)
        return sql

    def search(
        self,
        query: Optional[str] = None,
        *,
        from_: Optional[str] = None,
        to: Optional[str] = None,
        limit: int = 500,
        sources: Any = None,
    ) -> list[dict[str, Any]]:
        """Free-text search over title/description, newest first."""
        sql = "SELECT * FROM articles WHERE 1=1"
        params: list[Any] = []
        if query and query.strip():
            sql += " AND (title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\')"
            term = f"%{_escape_like(query.strip())}%"
            params.extend([term, term])
        sql = self._narrow(sql, params, sources=sources, from_=from_, to=to)
        sql += " ORDER BY published_at DESC LIMIT ?"
        params.append(limit)
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            logger.error("Error searching articles: %s", exc)
            return []
        return [shape_row(dict(row)) for row in rows]

    def get_for_holdings(
        self,
        holdings: Iterable[Any],
        *,
        from_: Optional[str] = None,
        to: Optional[str] = None,
        limit: int = 1000,
        sources: Any = None,
    ) -> list[dict[str, Any]]:
        """Cached articles found by any of the holdings' tickers."""
        tickers = _tickers(holdings)
        if not tickers:
            return []
        sql = "SELECT * FROM articles WHERE (" + " OR ".join([_TOKEN_MATCH_SQL] * len(tickers)) + ")"
        params: list[Any] = list(tickers)
        sql = self._narrow(sql, params, sources=sources, from_=from_, to=to)
        sql += " ORDER BY published_at DESC LIMIT ?"
        params.append(limit)
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            logger.error("Error querying cached articles for holdings: %s", exc)
            return []
        return [shape_row(dict(row)) for row in rows]

    def get_feed(
        self,
        *,
        limit: int = 100,
        from_: Optional[str] = None,
        to: Optional[str] = None,
        sources: Any = None,
        min_score: float = 40,
        holdings: Iterable[Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Ranked, holdings-gated feed of pipeline-processed articles."""
        sql = f"""
            SELECT * FROM articles
            WHERE status IN ({_placeholders(len(FEED_STATUSES))})
              AND status != 'discarded'
              AND (profile_adjusted_score IS NOT NULL OR final_rank_score IS NOT NULL)
              AND COALESCE(final_rank_score, profile_adjusted_score) >= ?
        """
        params: list[Any] = [*FEED_STATUSES, min_score]

        tickers = _tickers(holdings)
        if tickers:
            sql += " AND (" + " OR ".join([_TOKEN_MATCH_SQL] * len(tickers)) + ")"
            params.extend(tickers)
            logger.debug("Feed gated by %d holdings: %s", len(tickers), ", ".join(tickers))
        else:
            logger.warning("get_feed called without holdings - feed may show irrelevant articles")

        sql = self._narrow(sql, params, sources=sources, from_=from_, to=to)
        sql += (
            " ORDER BY COALESCE(final_rank_score, profile_adjusted_score) DESC,"
            " profile_adjusted_score DESC, published_at DESC LIMIT ?"
        )
        params.append(limit)
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            logger.error("Error getting feed articles: %s", exc)
            return []
        return [shape_feed_row(dict(row)) for row in rows]

    def count(self) -> int:
        try:
            return int(self.conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0])
        except sqlite3.Error as exc:
            logger.error("Error counting articles: %s", exc)
            return 0

    # ── Maintenance ─────────────────────────────────────────────

    def cleanup(self, days_to_keep: int = 30) -> int:
        """Delete articles published more than *days_to_keep* days ago."""
        try:
            cutoff = format_iso(datetime.now(timezone.utc) - timedelta(days=days_to_keep))
            cur = self.conn.execute("DELETE FROM articles WHERE published_at < ?", (cutoff,))
        except (OverflowError, sqlite3.Error) as exc:
            logger.error("Error cleaning up old articles: %s", exc)
            return 0
        logger.info("cleanup: deleted %d articles older than %s", cur.rowcount, cutoff)
        return cur.rowcount

    def clear_all(self) -> int:
        """Delete every article.  Failures propagate as ``StoreError``."""
        try:
            cur = self.conn.execute("DELETE FROM articles")
        except sqlite3.Error as exc:
            logger.error("Error clearing articles: %s", exc)
            raise StoreError(f"clear_all failed: {exc}", operation="clear_all") from exc
        logger.warning("clear_all: deleted %d articles", cur.rowcount)
        return cur.rowcount

    def close(self) -> None:
        self.conn.close()
