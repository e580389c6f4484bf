"""
Main FastAPI application for Newsdesk.
"""
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from newsdesk import __version__
from newsdesk.api.routes import get_database, router, set_database
from newsdesk.config import get_settings
from newsdesk.core.logging import configure_logging
from newsdesk.jobs.runner import TaskPolicy, run_with_policy
from newsdesk.jobs.scrape_news import CacheInvalidationGate, ScrapeNewsJob, ScrapeReport
from newsdesk.models.database import Database
from newsdesk.services.cache import build_cache, get_cache, set_cache
from newsdesk.sources import build_adapters

configure_logging(get_settings().log_level)

logger = structlog.get_logger()

# Global instances
scheduler: Optional[AsyncIOScheduler] = None


def build_scrape_job(database: Database) -> ScrapeNewsJob:
    """Wire the adapters, the shared cache and the gate into one job."""
    settings = get_settings()
    return ScrapeNewsJob(
        build_adapters(database.async_session, settings),
        CacheInvalidationGate(get_cache()),
        concurrent=settings.scrape.concurrent,
    )


async def run_scheduled_scrape() -> Optional[ScrapeReport]:
    """Run the scrape job under the configured retry and timeout policy."""
    settings = get_settings()
    job = build_scrape_job(get_database())
    report = await run_with_policy(job, TaskPolicy.from_settings(settings.scrape))
    if report is not None:
        logger.info("Scheduled scrape finished", report=str(report))
    return report


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    global scheduler

    settings = get_settings()

    # Initialize database
    logger.info("Initializing database", url=settings.database_url)
    database = Database(settings.database_url)
    await database.create_tables()
    set_database(database)
    set_cache(build_cache(settings.cache.store, database.async_session, settings.cache.sweep_interval))
    logger.info("Cache ready", store=settings.cache.store)

    # Schedule the daily scrape
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_scheduled_scrape,
        CronTrigger(hour=settings.scrape.schedule_hour, minute=settings.scrape.schedule_minute),
        id="daily_scrape",
        name="Daily News Scrape",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "Scheduler started",
        scrape_time=f"{settings.scrape.schedule_hour:02d}:{settings.scrape.schedule_minute:02d}",
    )

    yield

    # Shutdown
    logger.info("Shutting down")
    if scheduler:
        scheduler.shutdown()
    await database.dispose()


# Create FastAPI app
app = FastAPI(
    title="Newsdesk",
    description="News from NewsAPI.org, The Guardian and the New York Times in one place.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "newsdesk",
        "version": __version__,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Newsdesk API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "articles": "/api/articles",
            "preferences": "/api/users/{user_id}/preferences",
            "feed": "/api/users/{user_id}/feed",
            "sources": "/api/sources",
            "categories": "/api/categories",
            "authors": "/api/authors",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "newsdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
