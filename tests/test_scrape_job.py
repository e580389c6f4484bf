"""
Tests for the scrape job and its cache invalidation gate.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from structlog.testing import capture_logs

from newsdesk.jobs.scrape_news import CacheInvalidationGate, ScrapeNewsJob, ScrapeReport, AdapterOutcome
from newsdesk.models.database import DBArticle, DBCategory, DBSource
from newsdesk.services.cache import (
    ALL_AUTHORS_KEY,
    ALL_CATEGORIES_KEY,
    ALL_SOURCES_KEY,
    ARTICLES_SEARCH_TAG,
    user_feed_tag,
)
from newsdesk.sources import build_adapters

from conftest import NEWSAPI_HOST


def fake_adapter(name: str, result=None, error: Exception = None) -> MagicMock:
    adapter = MagicMock()
    adapter.name = name
    if error is not None:
        adapter.fetch = AsyncMock(side_effect=error)
    else:
        adapter.fetch = AsyncMock(return_value=result or [])
    return adapter


async def prime_cache(cache):
    await cache.put("articles_search_test_key", "dummy_data", 60, tags=[ARTICLES_SEARCH_TAG])
    await cache.put(ALL_SOURCES_KEY, "dummy_data", 60)
    await cache.put(ALL_CATEGORIES_KEY, "dummy_data", 60)
    await cache.put(ALL_AUTHORS_KEY, "dummy_data", 60)
    await cache.put("user_feed_1_abc", "dummy_data", 60, tags=[user_feed_tag(1)])


async def names(database, model) -> set[str]:
    async with database.async_session() as session:
        result = await session.execute(select(model.name))
        return set(result.scalars().all())


async def article_count(database) -> int:
    async with database.async_session() as session:
        return await session.scalar(select(func.count(DBArticle.id)))


class TestScrapeNewsJob:
    """End-to-end runs against faked providers."""

    @pytest.mark.asyncio
    async def test_scrapes_all_providers_and_clears_caches(self, database, settings, cache, http_client):
        await prime_cache(cache)
        job = ScrapeNewsJob(
            build_adapters(database.async_session, settings, http_client),
            CacheInvalidationGate(cache),
        )

        with capture_logs() as logs:
            report = await job.run()

        assert report.successful
        assert report.total_articles == 3
        assert [o.count for o in report.outcomes] == [1, 1, 1]
        assert report.caches_cleared

        assert await article_count(database) == 3
        assert {"ABC News", "The Guardian", "New York Times"} <= await names(database, DBSource)
        assert {"News", "World", "General"} <= await names(database, DBCategory)

        assert not await cache.has("articles_search_test_key")
        assert not await cache.has(ALL_SOURCES_KEY)
        assert not await cache.has(ALL_CATEGORIES_KEY)
        assert not await cache.has(ALL_AUTHORS_KEY)
        # Per-user feeds are not derived from the scrape
        assert await cache.has("user_feed_1_abc")

        events = [log["event"] for log in logs]
        assert "Scraping completed successfully. Clearing relevant caches..." in events
        assert "News scraping process completed. Total articles scraped: 3" in events
        assert "Successfully scraped 1 articles from The Guardian" in events

    @pytest.mark.asyncio
    async def test_rerun_does_not_duplicate(self, database, settings, cache, http_client):
        job = ScrapeNewsJob(
            build_adapters(database.async_session, settings, http_client),
            CacheInvalidationGate(cache),
        )

        await job.run()
        await job.run()

        assert await article_count(database) == 3

    @pytest.mark.asyncio
    async def test_raising_adapter_keeps_caches(self, cache):
        await prime_cache(cache)
        job = ScrapeNewsJob(
            [
                fake_adapter(
                    "NewsAPI.org",
                    error=Exception("Client error: `GET ...` resulted in a `500 Internal Server Error` response."),
                ),
                fake_adapter("The Guardian"),
                fake_adapter("New York Times"),
            ],
            CacheInvalidationGate(cache),
        )

        with capture_logs() as logs:
            report = await job.run()

        assert not report.successful
        assert not report.caches_cleared
        assert report.total_articles == 0
        assert report.outcomes[0].error is not None
        # Later adapters still ran
        assert [o.success for o in report.outcomes] == [False, True, True]

        assert await cache.has("articles_search_test_key")
        assert await cache.has(ALL_SOURCES_KEY)

        warnings = [log for log in logs if log["log_level"] == "warning"]
        assert any("Caches were NOT cleared" in log["event"] for log in warnings)
        assert any(log["event"] == "Error scraping from NewsAPI.org" for log in logs)

    @pytest.mark.asyncio
    async def test_provider_http_error_is_contained(self, database, settings, cache, http_client, providers):
        providers.routes[NEWSAPI_HOST] = 500
        await prime_cache(cache)
        job = ScrapeNewsJob(
            build_adapters(database.async_session, settings, http_client),
            CacheInvalidationGate(cache),
        )

        report = await job.run()

        # The adapter swallowed the failure, so the run still counts as successful
        assert report.successful
        assert report.total_articles == 2
        assert report.caches_cleared
        assert await article_count(database) == 2

    @pytest.mark.asyncio
    async def test_missing_credentials_do_not_fail_run(
        self, database, settings_without_keys, cache, http_client, providers
    ):
        await prime_cache(cache)
        job = ScrapeNewsJob(
            build_adapters(database.async_session, settings_without_keys, http_client),
            CacheInvalidationGate(cache),
        )

        with capture_logs() as logs:
            report = await job.run()

        assert report.successful
        assert report.total_articles == 0
        assert report.caches_cleared
        assert providers.requests == []
        assert await article_count(database) == 0

        key_errors = [log["event"] for log in logs if log["event"].endswith("API key is not set")]
        assert len(key_errors) == 3

    @pytest.mark.asyncio
    async def test_concurrent_mode_folds_in_adapter_order(self, cache):
        adapters = [
            fake_adapter("NewsAPI.org", result=[object(), object()]),
            fake_adapter("The Guardian", error=RuntimeError("boom")),
            fake_adapter("New York Times", result=[object()]),
        ]
        job = ScrapeNewsJob(adapters, CacheInvalidationGate(cache), concurrent=True)

        report = await job.run()

        assert [o.name for o in report.outcomes] == ["NewsAPI.org", "The Guardian", "New York Times"]
        assert [o.count for o in report.outcomes] == [2, 0, 1]
        assert report.total_articles == 3
        assert not report.successful
        assert not report.caches_cleared
        for adapter in adapters:
            adapter.fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_mode_with_real_adapters(self, database, settings, cache, http_client):
        job = ScrapeNewsJob(
            build_adapters(database.async_session, settings, http_client),
            CacheInvalidationGate(cache),
            concurrent=True,
        )

        report = await job.run()

        assert report.successful
        assert report.total_articles == 3
        assert await article_count(database) == 3

    def test_failed_logs_exception(self, cache):
        job = ScrapeNewsJob([], CacheInvalidationGate(cache))

        with capture_logs() as logs:
            job.failed(RuntimeError("Test Job Failure"))

        assert logs[0]["event"] == "ScrapeNewsJob failed: Test Job Failure"
        assert logs[0]["log_level"] == "error"


class TestCacheInvalidationGate:
    @pytest.mark.asyncio
    async def test_success_clears(self, cache):
        await prime_cache(cache)

        assert await CacheInvalidationGate(cache).apply(True) is True
        assert not await cache.has("articles_search_test_key")
        assert not await cache.has(ALL_AUTHORS_KEY)

    @pytest.mark.asyncio
    async def test_failure_keeps(self, cache):
        await prime_cache(cache)

        assert await CacheInvalidationGate(cache).apply(False) is False
        assert await cache.has("articles_search_test_key")
        assert await cache.has(ALL_AUTHORS_KEY)


class TestScrapeReport:
    def test_summary(self):
        report = ScrapeReport(
            outcomes=[
                AdapterOutcome(name="NewsAPI.org", count=4),
                AdapterOutcome(name="The Guardian", error="timeout"),
            ],
            caches_cleared=False,
            duration_seconds=1.25,
        )

        assert report.total_articles == 4
        assert not report.successful
        text = str(report)
        assert "NewsAPI.org=4" in text
        assert "The Guardian=error" in text
        assert "caches_cleared=False" in text

    def test_empty_run_is_successful(self):
        assert ScrapeReport().successful
