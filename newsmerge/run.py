"""Entry point: ``python -m newsmerge.run <command>``

Commands:
    fetch QUERY        fetch from all enabled providers, store, print
    holdings TICKER..  fetch for each ticker concurrently, store, print
    feed               ranked feed from the store (needs --holdings)
    search QUERY       free-text search over stored articles
    cleanup            delete articles past the retention window
    clear --yes        delete every stored article
    count              number of stored articles

Environment variables control which providers are active:
    ENABLE_GNEWS=1       (default: on, needs GNEWS_API_KEY)
    ENABLE_NEWSAPI=1     (default: on, needs NEWS_API_KEY)
    ENABLE_GOOGLE_RSS=1  (default: on)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional, Sequence

from .common_types import Holding
from .config import Config
from .errors import ConfigError, NewsMergeError
from .pipeline import NewsFetcher
from .store_sqlite import ArticleStore

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="newsmerge",
        description="Fetch, merge and query financial news from GNews, NewsAPI and Google News RSS.",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite path (default: $SQLITE_PATH or newsmerge/articles.db).",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("NEWSMERGE_LOG_LEVEL", "INFO"),
        help="Logging level, default INFO.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("fetch", help="Fetch one query from all enabled providers.")
    p.add_argument("query", nargs="?", default=None)
    p.add_argument("--sources", default=None, help="Comma-separated provider tags.")
    p.add_argument("--searched-by", default=None, help="Tag stored rows with this ticker/keyword.")
    p.add_argument("--category", default=None)
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--from", dest="from_", default=None)
    p.add_argument("--to", default=None)

    p = sub.add_parser("holdings", help="Fetch news for each ticker.")
    p.add_argument("tickers", nargs="+")
    p.add_argument("--sources", default=None, help="Comma-separated provider tags.")
    p.add_argument("--from", dest="from_", default=None)
    p.add_argument("--to", default=None)

    p = sub.add_parser("feed", help="Ranked, holdings-gated feed.")
    p.add_argument("--holdings", default="", help="Comma-separated tickers.")
    p.add_argument("--min-score", type=float, default=None)
    p.add_argument("--limit", type=int, default=None)
    p.add_argument("--sources", default=None)

    p = sub.add_parser("search", help="Search stored articles.")
    p.add_argument("query", nargs="?", default=None)
    p.add_argument("--limit", type=int, default=500)
    p.add_argument("--sources", default=None)
    p.add_argument("--from", dest="from_", default=None)
    p.add_argument("--to", default=None)

    p = sub.add_parser("cleanup", help="Delete articles past the retention window.")
    p.add_argument("--days", type=int, default=None)

    p = sub.add_parser("clear", help="Delete every stored article.")
    p.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    sub.add_parser("count", help="Number of stored articles.")
    return parser.parse_args(argv)


def _open_store(path: str) -> ArticleStore:
    if path != ":memory:":
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    return ArticleStore(path)


def _positive(name: str, value: Optional[int]) -> None:
    if value is not None and value <= 0:
        raise ConfigError(f"--{name} must be positive, got {value}")


async def _fetch(cfg: Config, store: ArticleStore, args: argparse.Namespace) -> list[dict[str, Any]]:
    async with NewsFetcher.from_config(cfg, store) as fetcher:
        if args.command == "fetch":
            articles = await fetcher.fetch_merged(
                args.query,
                category=args.category,
                page=args.page,
                from_=args.from_,
                to=args.to,
                sources=args.sources,
                searched_by=args.searched_by,
            )
        else:
            articles = await fetcher.fetch_for_holdings(
                [Holding(ticker=t) for t in args.tickers],
                from_=args.from_,
                to=args.to,
                sources=args.sources,
            )
    return [a.to_dict() for a in articles]


def run_command(cfg: Config, store: ArticleStore, args: argparse.Namespace) -> Any:
    """Execute one parsed command and return its JSON-serialisable result."""
    if args.command in ("fetch", "holdings"):
        return asyncio.run(_fetch(cfg, store, args))
    if args.command == "feed":
        _positive("limit", args.limit)
        tickers = [t for t in args.holdings.split(",") if t.strip()]
        return store.get_feed(
            limit=args.limit or cfg.feed_limit,
            min_score=cfg.feed_min_score if args.min_score is None else args.min_score,
            holdings=tickers,
            sources=args.sources,
        )
    if args.command == "search":
        _positive("limit", args.limit)
        return store.search(
            args.query, from_=args.from_, to=args.to, limit=args.limit, sources=args.sources,
        )
    if args.command == "cleanup":
        days = cfg.keep_articles_days if args.days is None else args.days
        if days < 0:
            raise ConfigError(f"--days must not be negative, got {days}")
        return {"deleted": store.cleanup(days)}
    if args.command == "clear":
        if not args.yes:
            raise ConfigError("clear deletes every article; pass --yes to confirm")
        return {"deleted": store.clear_all()}
    if args.command == "count":
        return {"count": store.count()}
    raise ConfigError(f"Unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=str(args.log_level).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    cfg = Config()
    logger.info("Active sources: %s", cfg.active_sources)

    try:
        with _open_store(args.db or cfg.sqlite_path) as store:
            result = run_command(cfg, store, args)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2
    except NewsMergeError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1

    sys.stdout.write(json.dumps(result, indent=2, default=str) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
