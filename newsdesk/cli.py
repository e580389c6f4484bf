"""
Command line interface for Newsdesk.

Usage:
    # Scrape every provider once
    newsdesk scrape

    # Create the database tables
    newsdesk init-db

    # Show which providers have credentials
    newsdesk health
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

import structlog

from newsdesk.config import get_settings
from newsdesk.core.logging import configure_logging
from newsdesk.jobs.scrape_news import CacheInvalidationGate, ScrapeNewsJob
from newsdesk.models.database import Database
from newsdesk.services.cache import build_cache
from newsdesk.sources import build_adapters

logger = structlog.get_logger(__name__)


async def cmd_scrape(args) -> int:
    """Run the scrape job once, in the foreground."""
    settings = get_settings()
    logger.info("Manual scrape requested")
    database = Database(settings.database_url)
    try:
        await database.create_tables()
        # The API server reads the same store, so the gate evicts its entries too
        cache = build_cache(settings.cache.store, database.async_session, settings.cache.sweep_interval)
        job = ScrapeNewsJob(
            build_adapters(database.async_session, settings),
            CacheInvalidationGate(cache),
            concurrent=args.concurrent or settings.scrape.concurrent,
        )
        report = await job.run()
    finally:
        await database.dispose()

    print("\n" + "=" * 60)
    print("SCRAPE RESULTS")
    print("=" * 60)
    for outcome in report.outcomes:
        status = f"{outcome.count} articles" if outcome.success else f"FAILED ({outcome.error})"
        print(f"  {outcome.name}: {status}")
    print("-" * 60)
    print(report)

    # Adapter failures are reported above, the command itself still succeeded
    return 0


async def cmd_init_db(args) -> int:
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        await database.create_tables()
    finally:
        await database.dispose()
    print(f"Tables created in {settings.database_url}")
    return 0


async def cmd_health(args) -> int:
    """Report which providers are configured."""
    settings = get_settings()
    configured = {
        "NewsAPI.org": bool(settings.newsapi_key),
        "The Guardian": bool(settings.guardian_api_key),
        "New York Times": bool(settings.nyt_api_key),
    }

    print("\n" + "=" * 40)
    print("PROVIDER CREDENTIALS")
    print("=" * 40)
    for provider, ok in configured.items():
        status = "✓ configured" if ok else "✗ missing key"
        print(f"  {provider}: {status}")

    return 0 if all(configured.values()) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsdesk", description="Newsdesk - news ingestion CLI")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    scrape_parser = subparsers.add_parser("scrape", help="Scrape news from all providers")
    scrape_parser.add_argument(
        "--concurrent", "-c",
        action="store_true",
        help="Run provider adapters concurrently",
    )

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("health", help="Show provider credential status")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(get_settings().log_level)

    if args.command == "scrape":
        return asyncio.run(cmd_scrape(args))
    elif args.command == "init-db":
        return asyncio.run(cmd_init_db(args))
    elif args.command == "health":
        return asyncio.run(cmd_health(args))

    return 0


if __name__ == "__main__":
    sys.exit(main())
