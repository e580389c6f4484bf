"""
FastAPI routes for the Newsdesk API.
"""

import asyncio
from datetime import date
from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk.config import get_settings
from newsdesk.models.database import Database
from newsdesk.models.domain import (
    ArticleFilters,
    CategoryOut,
    FeedFilters,
    NormalizedArticle,
    Page,
    SourceOut,
    UserPreferences,
    UserPreferencesUpdate,
)
from newsdesk.services import articles as article_service
from newsdesk.services import preferences as preference_service
from newsdesk.services.cache import TaggedCache, get_cache
from newsdesk.services.rate_limiter import RateLimiter, get_rate_limiter

logger = structlog.get_logger(__name__)
router = APIRouter()

# Strong references to fire-and-forget tasks until they finish
_background_tasks: set[asyncio.Task] = set()

# Set during application startup
_database: Optional[Database] = None


def set_database(database: Database) -> None:
    global _database
    _database = database


def get_database() -> Database:
    if _database is None:
        raise RuntimeError("Database not initialised")
    return _database


async def get_db_session():
    """Dependency to get a database session."""
    async with get_database().async_session() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
CacheDep = Annotated[TaggedCache, Depends(get_cache)]


def throttle(bucket: str):
    """Dependency factory enforcing a per-client request budget."""

    async def dependency(
        request: Request,
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> None:
        client = request.client.host if request.client else "anonymous"
        if not await limiter.try_acquire(bucket, client):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too Many Attempts.",
                headers={"Retry-After": str(limiter.retry_after(bucket, client))},
            )

    return dependency


# ============================================================================
# Article Routes
# ============================================================================


@router.get(
    "/articles",
    response_model=Page[NormalizedArticle],
    dependencies=[Depends(throttle("articles-feed"))],
)
async def search_articles(
    session: SessionDep,
    cache: CacheDep,
    keyword: Annotated[Optional[str], Query()] = None,
    start_date: Annotated[Optional[date], Query()] = None,
    end_date: Annotated[Optional[date], Query()] = None,
    category: Annotated[Optional[str], Query()] = None,
    source: Annotated[Optional[str], Query()] = None,
    page: Annotated[Optional[int], Query(ge=1)] = None,
    per_page: Annotated[Optional[int], Query(ge=1)] = None,
):
    """
    Search and filter articles.

    Keyword matches title, description, content, author and source name.
    Dates are inclusive. Results are newest first.
    """
    filters = ArticleFilters(
        keyword=keyword,
        start_date=start_date,
        end_date=end_date,
        category=category,
        source=source,
        page=page,
        per_page=per_page,
    )

    return await article_service.search_articles(session, cache, filters)


# ============================================================================
# User Preferences Routes
# ============================================================================


@router.get("/users/{user_id}/preferences")
async def get_user_preferences(user_id: int, session: SessionDep):
    """Get a user's preferences (empty lists if none are stored)."""
    preferences = await preference_service.get_preferences(session, user_id)

    if preferences is None:
        return {
            "message": "No preferences set for this user.",
            "preferences": UserPreferences(user_id=user_id).model_dump(mode="json"),
        }

    return preferences.model_dump(mode="json")


@router.post("/users/{user_id}/preferences")
async def save_user_preferences(
    user_id: int,
    update: UserPreferencesUpdate,
    session: SessionDep,
    cache: CacheDep,
):
    """Store or update a user's preferences."""
    try:
        preferences = await preference_service.save_preferences(session, cache, user_id, update)
    except preference_service.PreferenceValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"message": str(e), "errors": e.errors},
        )

    return {
        "message": "Preferences saved successfully.",
        "preferences": preferences.model_dump(mode="json"),
    }


@router.get(
    "/users/{user_id}/feed",
    dependencies=[Depends(throttle("articles-feed"))],
)
async def get_user_feed(
    user_id: int,
    session: SessionDep,
    cache: CacheDep,
    page: Annotated[Optional[int], Query(ge=1)] = None,
    per_page: Annotated[Optional[int], Query(ge=1)] = None,
):
    """
    Get the personalized news feed for a user.

    Falls back to the general newest-first listing when the user has no
    preferences.
    """
    filters = FeedFilters(page=page, per_page=per_page)

    result, personalized = await article_service.personalized_feed(
        session, cache, user_id, filters
    )

    if not personalized:
        return {
            "message": "No preferences set, returning general feed.",
            "articles": result.model_dump(mode="json", by_alias=True),
        }
    return result.model_dump(mode="json", by_alias=True)


# ============================================================================
# Metadata Routes
# ============================================================================


@router.get(
    "/sources",
    response_model=list[SourceOut],
    dependencies=[Depends(throttle("metadata"))],
)
async def get_sources(session: SessionDep, cache: CacheDep):
    """All known sources."""
    return await article_service.list_sources(session, cache)


@router.get(
    "/categories",
    response_model=list[CategoryOut],
    dependencies=[Depends(throttle("metadata"))],
)
async def get_categories(session: SessionDep, cache: CacheDep):
    """All known categories."""
    return await article_service.list_categories(session, cache)


@router.get(
    "/authors",
    response_model=list[str],
    dependencies=[Depends(throttle("metadata"))],
)
async def get_authors(session: SessionDep, cache: CacheDep):
    """All distinct authors of stored articles."""
    return await article_service.list_authors(session, cache)


# ============================================================================
# Admin Routes
# ============================================================================


@router.post("/admin/scrape", status_code=status.HTTP_202_ACCEPTED)
async def trigger_scrape():
    """Manually trigger a scrape run (development only)."""
    settings = get_settings()
    if settings.environment != "development":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only available in development mode",
        )

    # Imported here to avoid a cycle with the app module
    from newsdesk.main import run_scheduled_scrape

    task = asyncio.create_task(run_scheduled_scrape())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    logger.info("Manual scrape queued")
    return {"message": "Scrape job started"}
