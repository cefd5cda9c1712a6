"""Normalisation functions: raw provider payloads → Article.

Each provider has its own normaliser.  The functions are intentionally
**schema-tolerant**: they try multiple field shapes so that minor API or
feed changes don't silently drop data.

GNews (/api/v4/search):
    title, description, content, url, image, publishedAt, source{name,url}

NewsAPI (/v2/everything, /v2/top-headlines):
    source{id,name}, author, title, description, url, urlToImage,
    publishedAt, content

Google News RSS (RSS 2.0 item or Atom entry, via feedparser or any other
tree parser):
    title, link, description/summary, pubDate/published, source, dc:creator
    Values may be bare or wrapped in a single-element list, and text nodes
    may be ``{"_": text}`` / ``{"value": text}`` mappings.

The RSS text heuristics (HTML stripping, image and source-name recovery)
are pure functions so they can be tested without network access.
"""

from __future__ import annotations

import html
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Mapping
from urllib.parse import urlparse

from dateutil import parser as dtparser

from .common_types import (
    FEED_GNEWS,
    FEED_GOOGLE_RSS,
    FEED_NEWSAPI,
    Article,
    ArticleSource,
)

logger = logging.getLogger(__name__)

UNKNOWN_SOURCE = "Unknown"
RSS_FALLBACK_SOURCE = "Google News"


# ── Timestamps ──────────────────────────────────────────────────

# Shortest valid format: "YYYYMMDD" = 8 chars.  Shorter strings like
# "5" or "12" are ambiguously parsed by dateutil (e.g. "5" → the 5th of
# the current month) and would corrupt keep-earliest ordering.
_MIN_DATE_LEN = 8


def format_iso(dt: datetime) -> str:
    """Canonical storage form: ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC.

    One fixed-width format means lexical order equals chronological
    order, which the store relies on for ``published_at`` comparisons.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    return format_iso(datetime.now(timezone.utc))


def parse_published(value: Any) -> str | None:
    """Parse a provider date into canonical ISO form, or ``None``.

    Accepts ISO / RFC-822 strings, ``datetime`` and ``time.struct_time``
    (feedparser's ``*_parsed`` fields).  Naive datetimes are assumed UTC
    so results don't depend on the server timezone.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return format_iso(value)
    if isinstance(value, time.struct_time):
        return format_iso(datetime(*value[:6], tzinfo=timezone.utc))
    s = str(value).strip()
    if len(s) < _MIN_DATE_LEN:
        logger.debug("Date string too short (%d chars): %r", len(s), s)
        return None
    try:
        return format_iso(dtparser.parse(s))
    except (ValueError, OverflowError):
        logger.debug("Unparseable date %r", s[:80])
        return None


def to_iso_or_now(value: Any) -> str:
    """``parse_published`` with the ingestion time as fallback."""
    return parse_published(value) or now_iso()


# ── Shared helpers ──────────────────────────────────────────────

def _as_mapping(x: Any) -> Mapping[str, Any]:
    return x if isinstance(x, Mapping) else {}


def _clean(x: Any) -> str | None:
    """Strip a string field; empty / non-string → ``None``."""
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def unwrap_field(value: Any, default: str = "") -> str:
    """Return the text of a parsed-feed value.

    Handles bare strings, single-element lists, and text-node mappings
    (``{"_": ...}`` from xml2js-style trees, ``{"value": ...}`` from
    feedparser detail dicts, ``{"href": ...}`` for Atom links).
    """
    if value is None:
        return default
    if isinstance(value, (list, tuple)):
        if not value:
            return default
        value = value[0]
    if isinstance(value, Mapping):
        for key in ("_", "value", "#text", "title", "href"):
            inner = value.get(key)
            if isinstance(inner, str) and inner:
                return inner
        return default
    if isinstance(value, str):
        return value or default
    return str(value)


# ── RSS text heuristics ─────────────────────────────────────────

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_IMG_SRC_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)
_SOURCE_HINT_RE = re.compile(r"(?:Source|via|from|by):\s*([^<.]+)", re.IGNORECASE)


def strip_html(text: str | None) -> str | None:
    """Remove tags, decode entities and collapse whitespace."""
    if not text:
        return None
    cleaned = _HTML_TAG_RE.sub("", text)
    cleaned = html.unescape(cleaned).replace("\xa0", " ")
    cleaned = " ".join(cleaned.split())
    return cleaned or None


def extract_image_url(description: str | None) -> str | None:
    """First ``<img src=...>`` in an HTML description, if any."""
    if not description:
        return None
    m = _IMG_SRC_RE.search(description)
    return m.group(1) if m else None


def _hostname(url: Any) -> str | None:
    if not isinstance(url, str) or not url:
        return None
    host = urlparse(url).hostname
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def extract_source_name(entry: Mapping[str, Any], description: str | None) -> str:
    """Best-effort publisher name for an RSS item.

    Order: explicit ``<source>`` tag (its text, else the hostname of its
    url), then ``dc:creator`` / author, then a ``Source:``/``via:``/
    ``from:``/``by:`` hint in the raw description, then a generic label.
    """
    source = entry.get("source")
    if isinstance(source, (list, tuple)):
        source = source[0] if source else None
    if isinstance(source, str) and source.strip():
        return source.strip()
    if isinstance(source, Mapping):
        text = unwrap_field({k: v for k, v in source.items() if k != "href"})
        if text.strip():
            return text.strip()
        attrs = _as_mapping(source.get("$"))
        host = _hostname(source.get("href") or source.get("url") or attrs.get("url"))
        if host:
            return host

    creator = unwrap_field(entry.get("dc:creator") or entry.get("author")).strip()
    if creator:
        return creator

    if description:
        m = _SOURCE_HINT_RE.search(description)
        if m and m.group(1).strip():
            return m.group(1).strip()

    return RSS_FALLBACK_SOURCE


# ── GNews ───────────────────────────────────────────────────────

def normalize_gnews(it: Mapping[str, Any]) -> Article:
    """Normalise one GNews ``articles[]`` item."""
    src = _as_mapping(it.get("source"))
    return Article(
        url=str(it.get("url") or "").strip(),
        title=str(it.get("title") or "").strip(),
        source=ArticleSource(id=None, name=_clean(src.get("name")) or UNKNOWN_SOURCE),
        author=None,
        description=_clean(it.get("description")),
        url_to_image=_clean(it.get("image")),
        published_at=to_iso_or_now(it.get("publishedAt")),
        content=_clean(it.get("content")),
        feed_source=FEED_GNEWS,
    )


# ── NewsAPI ─────────────────────────────────────────────────────

def normalize_newsapi(it: Mapping[str, Any]) -> Article:
    """Normalise one NewsAPI ``articles[]`` item (already close to canonical)."""
    src = _as_mapping(it.get("source"))
    return Article(
        url=str(it.get("url") or "").strip(),
        title=str(it.get("title") or "").strip(),
        source=ArticleSource(
            id=_clean(src.get("id")),
            name=_clean(src.get("name")) or UNKNOWN_SOURCE,
        ),
        author=_clean(it.get("author")),
        description=_clean(it.get("description")),
        url_to_image=_clean(it.get("urlToImage")),
        published_at=to_iso_or_now(it.get("publishedAt")),
        content=_clean(it.get("content")),
        feed_source=FEED_NEWSAPI,
    )


# ── Google News RSS ─────────────────────────────────────────────

def _entry_published(entry: Mapping[str, Any]) -> str:
    for key in ("pubDate", "published", "updated"):
        parsed = parse_published(unwrap_field(entry.get(key)))
        if parsed:
            return parsed
    for key in ("published_parsed", "updated_parsed"):
        parsed = parse_published(entry.get(key))
        if parsed:
            return parsed
    return now_iso()


def _entry_link(entry: Mapping[str, Any]) -> str:
    link = entry.get("link")
    if isinstance(link, (list, tuple)) and link:
        first = link[0]
        # xml2js-style Atom link: {"$": {"href": ...}}
        href = _as_mapping(_as_mapping(first).get("$")).get("href")
        if isinstance(href, str) and href:
            return href
    text = unwrap_field(link)
    if text:
        return text
    for candidate in entry.get("links") or []:
        href = _as_mapping(candidate).get("href")
        if isinstance(href, str) and href:
            return href
    return ""


def normalize_rss_entry(entry: Mapping[str, Any]) -> Article:
    """Normalise one Google News RSS item / Atom entry.

    The raw HTML description feeds the image and source heuristics
    before it is stripped for storage; the stripped text doubles as
    ``content`` because the feed carries no article body.
    """
    raw_description = unwrap_field(
        entry.get("description") or entry.get("summary") or entry.get("content")
    )
    description = strip_html(raw_description)
    return Article(
        url=_entry_link(entry).strip(),
        title=unwrap_field(entry.get("title")).strip(),
        source=ArticleSource(id=None, name=extract_source_name(entry, raw_description)),
        author=None,
        description=description,
        url_to_image=extract_image_url(raw_description),
        published_at=_entry_published(entry),
        content=description,
        feed_source=FEED_GOOGLE_RSS,
    )
