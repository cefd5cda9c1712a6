"""URL-keyed de-duplication and date ordering for article batches."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from dateutil import parser as dtparser

from .common_types import Article

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def merge_searched_by(existing: str | None, incoming: str | None) -> str | None:
    """Comma-append *incoming* unless it already occurs in *existing*."""
    if not incoming:
        return existing
    if not existing:
        return incoming
    if incoming in existing:
        return existing
    return f"{existing},{incoming}"


def deduplicate(articles: Iterable[Article]) -> list[Article]:
    """First occurrence per URL wins; url-less articles are dropped."""
    seen: set[str] = set()
    unique: list[Article] = []
    for article in articles:
        if not article.url or article.url in seen:
            continue
        seen.add(article.url)
        unique.append(article)
    return unique


def deduplicate_with_context(articles: Iterable[Article]) -> list[Article]:
    """Like ``deduplicate`` but folds later duplicates' ``searched_by`` in.

    The retained record is a copy of the first occurrence; every other
    field of a later duplicate is discarded.
    """
    by_url: dict[str, Article] = {}
    for article in articles:
        if not article.url:
            continue
        kept = by_url.get(article.url)
        if kept is None:
            by_url[article.url] = article.copy()
        else:
            kept.searched_by = merge_searched_by(kept.searched_by, article.searched_by)
    return list(by_url.values())


def _published_key(article: Article) -> datetime:
    if not article.published_at:
        return _EPOCH
    try:
        dt = dtparser.parse(article.published_at)
    except (ValueError, OverflowError):
        return _EPOCH
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def sort_by_published(articles: Iterable[Article]) -> list[Article]:
    """Newest first; stable, so ties keep their relative order."""
    return sorted(articles, key=_published_key, reverse=True)
