"""Tests for the ``python -m newsmerge.run`` command-line entry point."""

from __future__ import annotations

import io
import json
import unittest
from unittest.mock import patch

from newsmerge import run
from newsmerge.common_types import Article, ArticleSource
from newsmerge.config import Config
from newsmerge.store_sqlite import ArticleStore


def _main(*argv: str) -> tuple[int, str]:
    with patch("sys.stdout", new_callable=io.StringIO) as out:
        code = run.main(["--db", ":memory:", *argv])
    return code, out.getvalue()


class TestMain(unittest.TestCase):

    def test_count_on_empty_store(self):
        code, out = _main("count")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), {"count": 0})

    def test_clear_requires_confirmation(self):
        code, out = _main("clear")
        self.assertEqual(code, 2)
        self.assertEqual(out, "")

    def test_clear_with_yes(self):
        code, out = _main("clear", "--yes")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), {"deleted": 0})

    def test_negative_cleanup_days_rejected(self):
        code, _ = _main("cleanup", "--days", "-1")
        self.assertEqual(code, 2)

    def test_non_positive_limit_rejected(self):
        code, _ = _main("search", "apple", "--limit", "0")
        self.assertEqual(code, 2)


class TestRunCommand(unittest.TestCase):

    def setUp(self):
        self.store = ArticleStore(":memory:")
        self.store.upsert_batch([
            Article(
                url="https://ex.com/a",
                title="Apple beats estimates",
                source=ArticleSource(name="Reuters"),
                published_at="2024-01-02T00:00:00Z",
                feed_source="gnews",
            ),
        ], "AAPL")
        self.store.apply_enrichment("https://ex.com/a", status="ranked", final_rank_score=60)
        self.cfg = Config(feed_min_score=40, feed_limit=100, keep_articles_days=30)

    def tearDown(self):
        self.store.close()

    def test_search(self):
        args = run._parse_args(["search", "apple"])
        rows = run.run_command(self.cfg, self.store, args)
        self.assertEqual([r["url"] for r in rows], ["https://ex.com/a"])

    def test_feed_uses_holdings_and_config_threshold(self):
        rows = run.run_command(self.cfg, self.store, run._parse_args(["feed", "--holdings", "aapl,msft"]))
        self.assertEqual(len(rows), 1)
        rows = run.run_command(self.cfg, self.store, run._parse_args(["feed", "--holdings", "AAPL", "--min-score", "61"]))
        self.assertEqual(rows, [])

    def test_cleanup_uses_retention_default(self):
        result = run.run_command(self.cfg, self.store, run._parse_args(["cleanup"]))
        self.assertEqual(result, {"deleted": 1})

    def test_fetch_delegates_to_fetcher(self):
        async def fake_fetch_merged(self_, query, **kwargs):
            self.assertEqual(query, "AAPL")
            self.assertEqual(kwargs["sources"], "gnews")
            self.assertEqual(kwargs["searched_by"], "AAPL")
            return [Article(url="https://ex.com/new", title="New")]

        cfg = Config(enable_gnews=False, enable_newsapi=False, enable_google_rss=False)
        with patch("newsmerge.run.NewsFetcher.fetch_merged", new=fake_fetch_merged):
            rows = run.run_command(
                cfg, self.store,
                run._parse_args(["fetch", "AAPL", "--sources", "gnews", "--searched-by", "AAPL"]),
            )
        self.assertEqual(rows[0]["url"], "https://ex.com/new")
        self.assertEqual(rows[0]["source"], {"id": None, "name": "Unknown"})


if __name__ == "__main__":
    unittest.main()
