"""Tests for newsmerge.normalize: provider payload mapping, date
canonicalisation and the Google News RSS text heuristics."""

from __future__ import annotations

import time
import unittest
from datetime import datetime, timedelta, timezone

from newsmerge.normalize import (
    RSS_FALLBACK_SOURCE,
    extract_image_url,
    extract_source_name,
    normalize_gnews,
    normalize_newsapi,
    normalize_rss_entry,
    now_iso,
    parse_published,
    strip_html,
    unwrap_field,
)


class TestParsePublished(unittest.TestCase):

    def test_iso_z(self):
        self.assertEqual(parse_published("2024-01-15T10:30:00Z"), "2024-01-15T10:30:00.000Z")

    def test_rfc822(self):
        self.assertEqual(
            parse_published("Mon, 15 Jan 2024 10:30:00 GMT"),
            "2024-01-15T10:30:00.000Z",
        )

    def test_offset_converted_to_utc(self):
        self.assertEqual(
            parse_published("2024-01-15T12:30:00+02:00"),
            "2024-01-15T10:30:00.000Z",
        )

    def test_naive_assumed_utc(self):
        self.assertEqual(parse_published("2024-01-15 10:30:00"), "2024-01-15T10:30:00.000Z")

    def test_datetime_and_struct_time(self):
        dt = datetime(2024, 1, 15, 10, 30, tzinfo=timezone(timedelta(hours=-5)))
        self.assertEqual(parse_published(dt), "2024-01-15T15:30:00.000Z")
        st = time.strptime("2024-01-15 10:30:00", "%Y-%m-%d %H:%M:%S")
        self.assertEqual(parse_published(st), "2024-01-15T10:30:00.000Z")

    def test_short_or_garbage_is_none(self):
        for value in (None, "", "5", "12", "not-a-real-date"):
            self.assertIsNone(parse_published(value), value)

    def test_canonical_form_sorts_lexically(self):
        a = parse_published("Mon, 15 Jan 2024 09:00:00 GMT")
        b = parse_published("2024-01-15T10:00:00+00:00")
        self.assertLess(a, b)
        self.assertLess(b, now_iso())


class TestUnwrapField(unittest.TestCase):

    def test_shapes(self):
        self.assertEqual(unwrap_field("plain"), "plain")
        self.assertEqual(unwrap_field(["first", "second"]), "first")
        self.assertEqual(unwrap_field({"_": "node text"}), "node text")
        self.assertEqual(unwrap_field({"value": "detail"}), "detail")
        self.assertEqual(unwrap_field([{"_": "wrapped"}]), "wrapped")

    def test_defaults(self):
        self.assertEqual(unwrap_field(None), "")
        self.assertEqual(unwrap_field([], "dflt"), "dflt")
        self.assertEqual(unwrap_field({"other": 1}, "dflt"), "dflt")


class TestRssTextHeuristics(unittest.TestCase):

    def test_strip_html(self):
        raw = '<a href="https://x">Apple beats</a>&nbsp;&nbsp;<font color="#6f6f6f">Reuters</font>'
        self.assertEqual(strip_html(raw), "Apple beats Reuters")

    def test_strip_html_entities_and_empty(self):
        self.assertEqual(strip_html("AT&amp;T &lt;up&gt;"), "AT&T <up>")
        self.assertIsNone(strip_html("<p> </p>"))
        self.assertIsNone(strip_html(None))

    def test_extract_image_url(self):
        raw = '<p><img alt="" src="https://img.example/1.jpg" width="80"></p>'
        self.assertEqual(extract_image_url(raw), "https://img.example/1.jpg")
        self.assertIsNone(extract_image_url("<p>no image</p>"))

    def test_source_tag_text(self):
        entry = {"source": [{"_": "Reuters", "$": {"url": "https://www.reuters.com"}}]}
        self.assertEqual(extract_source_name(entry, None), "Reuters")

    def test_source_tag_feedparser_shape(self):
        entry = {"source": {"href": "https://www.ft.com", "title": "Financial Times"}}
        self.assertEqual(extract_source_name(entry, None), "Financial Times")

    def test_source_url_hostname_without_www(self):
        self.assertEqual(
            extract_source_name({"source": {"$": {"url": "https://www.reuters.com/markets"}}}, None),
            "reuters.com",
        )
        self.assertEqual(extract_source_name({"source": {"href": "https://ft.com"}}, None), "ft.com")

    def test_creator(self):
        self.assertEqual(extract_source_name({"dc:creator": ["Jane Doe"]}, None), "Jane Doe")

    def test_description_hint(self):
        self.assertEqual(
            extract_source_name({}, "Stocks climb on jobs data via: Bloomberg. More inside"),
            "Bloomberg",
        )

    def test_fallback(self):
        self.assertEqual(extract_source_name({}, "<p>nothing useful</p>"), RSS_FALLBACK_SOURCE)


class TestNormalizeGNews(unittest.TestCase):

    def test_basic(self):
        a = normalize_gnews({
            "title": " Apple beats ",
            "description": "Q1 results",
            "content": "Full text",
            "url": "https://gnews.example/a",
            "image": "https://img/1.jpg",
            "publishedAt": "2024-01-15T10:30:00Z",
            "source": {"name": "CNBC", "url": "https://cnbc.com"},
        })
        self.assertEqual(a.title, "Apple beats")
        self.assertEqual(a.url, "https://gnews.example/a")
        self.assertEqual(a.source.name, "CNBC")
        self.assertIsNone(a.source.id)
        self.assertIsNone(a.author)
        self.assertEqual(a.url_to_image, "https://img/1.jpg")
        self.assertEqual(a.published_at, "2024-01-15T10:30:00.000Z")
        self.assertEqual(a.feed_source, "gnews")

    def test_missing_fields(self):
        a = normalize_gnews({"title": "T", "url": "https://x"})
        self.assertEqual(a.source.name, "Unknown")
        self.assertIsNone(a.description)
        self.assertTrue(a.published_at.endswith("Z"))


class TestNormalizeNewsApi(unittest.TestCase):

    def test_basic(self):
        a = normalize_newsapi({
            "source": {"id": "reuters", "name": "Reuters"},
            "author": "Jane Doe",
            "title": "Fed holds",
            "description": "Rates unchanged",
            "url": "https://newsapi.example/a",
            "urlToImage": "https://img/2.jpg",
            "publishedAt": "2024-01-15T10:30:00Z",
            "content": "Body",
        })
        self.assertEqual(a.source.id, "reuters")
        self.assertEqual(a.source.name, "Reuters")
        self.assertEqual(a.author, "Jane Doe")
        self.assertEqual(a.url_to_image, "https://img/2.jpg")
        self.assertEqual(a.feed_source, "newsapi")

    def test_null_source(self):
        a = normalize_newsapi({"source": None, "title": "T", "url": "https://x", "author": ""})
        self.assertEqual(a.source.name, "Unknown")
        self.assertIsNone(a.author)


class TestNormalizeRssEntry(unittest.TestCase):

    def test_tree_parser_shape(self):
        a = normalize_rss_entry({
            "title": ["Apple beats estimates - Reuters"],
            "link": ["https://news.google.com/rss/articles/abc"],
            "pubDate": ["Mon, 15 Jan 2024 10:30:00 GMT"],
            "description": ['<img src="https://img/1.jpg"><a href="x">Apple beats</a>&nbsp;Reuters'],
            "source": [{"_": "Reuters", "$": {"url": "https://www.reuters.com"}}],
        })
        self.assertEqual(a.url, "https://news.google.com/rss/articles/abc")
        self.assertEqual(a.title, "Apple beats estimates - Reuters")
        self.assertEqual(a.source.name, "Reuters")
        self.assertEqual(a.description, "Apple beats Reuters")
        self.assertEqual(a.content, a.description)
        self.assertEqual(a.url_to_image, "https://img/1.jpg")
        self.assertEqual(a.published_at, "2024-01-15T10:30:00.000Z")
        self.assertEqual(a.feed_source, "googlerss")

    def test_feedparser_shape(self):
        a = normalize_rss_entry({
            "title": "Oil slips",
            "link": "https://news.google.com/rss/articles/def",
            "summary": "Brent falls",
            "published_parsed": time.strptime("2024-01-15 10:30:00", "%Y-%m-%d %H:%M:%S"),
            "source": {"href": "https://www.ft.com", "title": "Financial Times"},
        })
        self.assertEqual(a.source.name, "Financial Times")
        self.assertEqual(a.description, "Brent falls")
        self.assertEqual(a.published_at, "2024-01-15T10:30:00.000Z")

    def test_atom_links(self):
        a = normalize_rss_entry({"title": "T", "link": [{"$": {"href": "https://atom/x"}}]})
        self.assertEqual(a.url, "https://atom/x")
        b = normalize_rss_entry({"title": "T", "links": [{"rel": "alternate", "href": "https://atom/y"}]})
        self.assertEqual(b.url, "https://atom/y")

    def test_missing_date_uses_now(self):
        a = normalize_rss_entry({"title": "T", "link": "https://x"})
        self.assertGreaterEqual(a.published_at, (datetime.now(timezone.utc) - timedelta(minutes=1)).strftime("%Y-%m-%dT%H:%M"))
        self.assertEqual(a.source.name, RSS_FALLBACK_SOURCE)


if __name__ == "__main__":
    unittest.main()
