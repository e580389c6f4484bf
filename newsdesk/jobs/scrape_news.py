"""
News scrape job.

Runs every configured provider adapter once, totals what they stored
and, only when every adapter finished without raising, clears the
derived read caches. A partial run leaves the caches alone: stale but
complete pages are preferred over fresh pages with holes in them.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

import structlog

from newsdesk.services.cache import (
    ALL_AUTHORS_KEY,
    ALL_CATEGORIES_KEY,
    ALL_SOURCES_KEY,
    ARTICLES_SEARCH_TAG,
    TaggedCache,
)
from newsdesk.sources.base import NewsProviderAdapter

logger = structlog.get_logger(__name__)


@dataclass
class AdapterOutcome:
    """What one adapter produced during a run."""
    name: str
    count: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ScrapeReport:
    """Result of a scrape run."""
    outcomes: list[AdapterOutcome] = field(default_factory=list)
    caches_cleared: bool = False
    duration_seconds: float = 0.0

    @property
    def total_articles(self) -> int:
        return sum(o.count for o in self.outcomes)

    @property
    def successful(self) -> bool:
        return all(o.success for o in self.outcomes)

    def __str__(self) -> str:
        status = "✓" if self.successful else "✗"
        parts = ", ".join(
            f"{o.name}={o.count}" if o.success else f"{o.name}=error"
            for o in self.outcomes
        )
        return (
            f"{status} total={self.total_articles} ({parts}), "
            f"caches_cleared={self.caches_cleared}, time={self.duration_seconds:.1f}s"
        )


class CacheInvalidationGate:
    """All-or-nothing eviction of the caches derived from article data."""

    def __init__(self, cache: TaggedCache):
        self.cache = cache

    async def apply(self, successful: bool) -> bool:
        """
        Clear search and metadata caches if the run was fully successful.

        Returns:
            True if caches were cleared
        """
        if not successful:
            logger.warning(
                "Scraping completed with errors. Caches were NOT cleared "
                "to prevent serving incomplete data."
            )
            return False

        logger.info("Scraping completed successfully. Clearing relevant caches...")
        await self.cache.invalidate_tags(ARTICLES_SEARCH_TAG)
        for key in (ALL_SOURCES_KEY, ALL_CATEGORIES_KEY, ALL_AUTHORS_KEY):
            await self.cache.forget(key)
        logger.info("Caches cleared")
        return True


class ScrapeNewsJob:
    """
    Orchestrates one scrape across all provider adapters.

    Adapters run in list order (or concurrently when `concurrent` is set,
    with results still folded in list order). An exception escaping an
    adapter marks the run unsuccessful but never stops the others.
    """

    def __init__(
        self,
        adapters: Sequence[NewsProviderAdapter],
        gate: CacheInvalidationGate,
        concurrent: bool = False,
    ):
        self.adapters = list(adapters)
        self.gate = gate
        self.concurrent = concurrent

    async def _run_adapter(self, adapter: NewsProviderAdapter) -> AdapterOutcome:
        logger.info(f"Scraping from {adapter.name}...", provider=adapter.name)
        try:
            articles = await adapter.fetch()
        except Exception as e:
            logger.error(
                f"Error scraping from {adapter.name}",
                provider=adapter.name,
                error=str(e),
                exc_info=True,
            )
            return AdapterOutcome(name=adapter.name, error=str(e))

        logger.info(
            f"Successfully scraped {len(articles)} articles from {adapter.name}",
            provider=adapter.name,
            count=len(articles),
        )
        return AdapterOutcome(name=adapter.name, count=len(articles))

    async def run(self) -> ScrapeReport:
        """Execute one scrape run."""
        start_time = datetime.utcnow()
        logger.info(
            "Starting news scrape",
            providers=[a.name for a in self.adapters],
            concurrent=self.concurrent,
        )

        if self.concurrent:
            # _run_adapter already contains adapter failures
            outcomes = list(await asyncio.gather(*(self._run_adapter(a) for a in self.adapters)))
        else:
            outcomes = []
            for adapter in self.adapters:
                outcomes.append(await self._run_adapter(adapter))

        report = ScrapeReport(outcomes=outcomes)
        report.caches_cleared = await self.gate.apply(report.successful)
        report.duration_seconds = (datetime.utcnow() - start_time).total_seconds()

        logger.info(
            f"News scraping process completed. Total articles scraped: {report.total_articles}",
            total=report.total_articles,
            successful=report.successful,
            elapsed_seconds=report.duration_seconds,
        )
        return report

    def failed(self, exception: BaseException) -> None:
        """Called by the runner once every attempt has failed."""
        logger.error(
            f"ScrapeNewsJob failed: {exception}",
            error=str(exception),
            exc_info=exception,
        )
