"""Row → consumer dict shaping for the store's read path.

Enrichment columns are written by an external pipeline and sometimes hold
junk (a fetched HTML page instead of a summary).  ``has_valid_enrichment``
decides whether a row's enrichment is trustworthy enough to surface.
"""

from __future__ import annotations

from typing import Any, Mapping

from .codec import decode_scores, decode_string_set
from .common_types import Article, ArticleSource

# Summaries at or above this length are assumed to be scraped pages.
MAX_ENRICHMENT_CHARS = 2000

_HTML_MARKERS = ("<!doctype", "<html")


def is_valid_enrichment_text(text: Any) -> bool:
    """Non-empty, shorter than ``MAX_ENRICHMENT_CHARS`` and not HTML."""
    if not isinstance(text, str):
        return False
    stripped = text.strip()
    if not stripped or len(stripped) >= MAX_ENRICHMENT_CHARS:
        return False
    if stripped.startswith("<"):
        return False
    lowered = stripped.lower()
    return not any(marker in lowered for marker in _HTML_MARKERS)


def has_valid_enrichment(row: Mapping[str, Any]) -> bool:
    """A valid summary, or a valid why-it-matters backed by relevance scores."""
    if is_valid_enrichment_text(row.get("summary_enriched")):
        return True
    if not is_valid_enrichment_text(row.get("why_it_matters")):
        return False
    return bool(decode_scores(row.get("relevance_scores_json"), url=row.get("url")))


def _triage_info(row: Mapping[str, Any]) -> dict[str, Any]:
    info: dict[str, Any] = {}
    if row.get("should_enrich") is not None:
        info["shouldEnrich"] = row["should_enrich"] == 1
    if row.get("triage_reason"):
        info["triageReason"] = row["triage_reason"]
    if row.get("triage_score") is not None:
        info["triageScore"] = row["triage_score"]
    return info


def _base(row: Mapping[str, Any], *, title: str | None = None) -> dict[str, Any]:
    return {
        "source": {"id": row.get("source_id"), "name": row.get("source_name")},
        "author": row.get("author"),
        "title": title if title is not None else row.get("title"),
        "description": row.get("description"),
        "url": row.get("url"),
        "urlToImage": row.get("url_to_image"),
        "publishedAt": row.get("published_at"),
        "content": row.get("content"),
        "feedSource": row.get("feed_source") or None,
        "searchedBy": row.get("searched_by") or None,
    }


def shape_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Shape used by ``get_by_urls``, ``search`` and ``get_for_holdings``."""
    article = _base(row)
    if has_valid_enrichment(row):
        article.update(
            summary=row.get("summary_enriched") or row.get("summary_short") or "",
            whyItMatters=row.get("why_it_matters") or row.get("personalized_teaser") or "",
            relevanceScores=decode_scores(row.get("relevance_scores_json"), url=row.get("url")),
        )
    article.update(_triage_info(row))
    return article


def shape_feed_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Ranked-feed shape: personalised title, widest summary, all scores."""
    url = row.get("url")
    article = _base(row, title=row.get("personalized_title") or row.get("title"))
    article.update(
        summary=(
            row.get("summary_short")
            or row.get("summary_medium")
            or row.get("summary_long")
            or row.get("summary_enriched")
            or ""
        ),
        whyItMatters=row.get("why_it_matters") or row.get("personalized_teaser") or "",
        relevanceScores=decode_scores(row.get("relevance_scores_json"), url=url),
        status=row.get("status"),
        impactScore=row.get("impact_score"),
        profileAdjustedScore=row.get("profile_adjusted_score"),
        finalRankScore=row.get("final_rank_score"),
        eventType=row.get("event_type"),
        sentiment=row.get("sentiment"),
        sentimentLabel=row.get("sentiment_label"),
        riskScore=row.get("risk_score"),
        opportunityScore=row.get("opportunity_score"),
        volatilityScore=row.get("volatility_score"),
        matchedTickers=decode_string_set(row.get("matched_tickers"), column="matched_tickers", url=url),
        matchedSectors=decode_string_set(row.get("matched_sectors"), column="matched_sectors", url=url),
        matchedHoldings=decode_string_set(row.get("matched_holdings"), column="matched_holdings", url=url),
        isPrimaryInCluster=row.get("is_primary_in_cluster") == 1,
        clusterId=row.get("cluster_id"),
    )
    return article


def row_to_article(row: Mapping[str, Any]) -> Article:
    """Full-fidelity ``Article`` for collaborators that need raw fields."""
    url = row.get("url")
    should_enrich = row.get("should_enrich")
    return Article(
        url=url,
        title=row.get("title"),
        source=ArticleSource(id=row.get("source_id"), name=row.get("source_name")),
        author=row.get("author"),
        description=row.get("description"),
        url_to_image=row.get("url_to_image"),
        published_at=row.get("published_at"),
        content=row.get("content"),
        feed_source=row.get("feed_source"),
        searched_by=row.get("searched_by"),
        last_scraped_at=row.get("last_scraped_at"),
        scrape_count=row.get("scrape_count"),
        summary_enriched=row.get("summary_enriched"),
        summary_short=row.get("summary_short"),
        summary_medium=row.get("summary_medium"),
        summary_long=row.get("summary_long"),
        why_it_matters=row.get("why_it_matters"),
        personalized_teaser=row.get("personalized_teaser"),
        personalized_title=row.get("personalized_title"),
        relevance_scores=decode_scores(row.get("relevance_scores_json"), url=url),
        triage_reason=row.get("triage_reason"),
        triage_score=row.get("triage_score"),
        should_enrich=None if should_enrich is None else should_enrich == 1,
        status=row.get("status"),
        impact_score=row.get("impact_score"),
        profile_adjusted_score=row.get("profile_adjusted_score"),
        final_rank_score=row.get("final_rank_score"),
        event_type=row.get("event_type"),
        sentiment=row.get("sentiment"),
        sentiment_label=row.get("sentiment_label"),
        risk_score=row.get("risk_score"),
        opportunity_score=row.get("opportunity_score"),
        volatility_score=row.get("volatility_score"),
        matched_tickers=decode_string_set(row.get("matched_tickers"), column="matched_tickers", url=url),
        matched_sectors=decode_string_set(row.get("matched_sectors"), column="matched_sectors", url=url),
        matched_holdings=decode_string_set(row.get("matched_holdings"), column="matched_holdings", url=url),
        is_primary_in_cluster=row.get("is_primary_in_cluster") == 1,
        cluster_id=row.get("cluster_id"),
    )
