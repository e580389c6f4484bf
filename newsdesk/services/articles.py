"""
Read-side queries: article search, personalized feed and metadata lists.

Every result is cached read-through. Search pages carry the
`articles_search` tag so the scrape job can evict all of them at once;
feed pages carry a per-user tag cleared when preferences change.
Results go into the cache as plain JSON and are validated on the way out.
"""
from typing import Optional

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from newsdesk.config import Settings, get_settings
from newsdesk.models.database import DBArticle, DBCategory, DBSource, DBUserPreferences
from newsdesk.models.domain import (
    ArticleFilters,
    CategoryOut,
    FeedFilters,
    NormalizedArticle,
    Page,
    SourceOut,
    UserPreferences,
)
from newsdesk.services.cache import (
    ALL_AUTHORS_KEY,
    ALL_CATEGORIES_KEY,
    ALL_SOURCES_KEY,
    ARTICLES_SEARCH_TAG,
    TaggedCache,
    default_feed_cache_key,
    feed_cache_key,
    search_cache_key,
    user_feed_tag,
)


ArticlePage = Page[NormalizedArticle]


def _base_query() -> Select:
    return select(DBArticle).options(
        selectinload(DBArticle.source),
        selectinload(DBArticle.category),
    )


async def paginate(
    session: AsyncSession,
    query: Select,
    page: int,
    per_page: int,
) -> Page[NormalizedArticle]:
    """Run `query` newest-first and cut out one page."""
    total = await session.scalar(select(func.count()).select_from(query.order_by(None).subquery()))

    result = await session.execute(
        query.order_by(DBArticle.published_at.desc(), DBArticle.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    items = [NormalizedArticle.model_validate(a) for a in result.scalars().all()]
    return Page[NormalizedArticle].build(items, total or 0, page, per_page)


def paging(filters: ArticleFilters | FeedFilters, settings: Settings) -> tuple[int, int]:
    """Effective page number and size, falling back to configured defaults."""
    per_page = min(filters.per_page or settings.default_page_size, settings.max_page_size)
    return filters.page or 1, per_page


def apply_filters(query: Select, filters: ArticleFilters) -> Select:
    """Translate search filters into WHERE clauses."""
    if filters.keyword:
        pattern = f"%{filters.keyword}%"
        query = query.where(
            or_(
                DBArticle.title.ilike(pattern),
                DBArticle.description.ilike(pattern),
                DBArticle.content.ilike(pattern),
                DBArticle.source.has(DBSource.name.ilike(pattern)),
                DBArticle.author.ilike(pattern),
            )
        )

    # Date bounds compare the date part only, both ends inclusive
    if filters.start_date:
        query = query.where(func.date(DBArticle.published_at) >= filters.start_date.isoformat())
    if filters.end_date:
        query = query.where(func.date(DBArticle.published_at) <= filters.end_date.isoformat())

    if filters.category:
        query = query.where(DBArticle.category.has(DBCategory.name == filters.category))
    if filters.source:
        query = query.where(DBArticle.source.has(DBSource.name == filters.source))

    return query


async def search_articles(
    session: AsyncSession,
    cache: TaggedCache,
    filters: ArticleFilters,
    settings: Optional[Settings] = None,
) -> Page[NormalizedArticle]:
    """Filtered, paginated article listing, cached per parameter set."""
    settings = settings or get_settings()
    key = search_cache_key(filters.query_params())

    async def compute():
        query = apply_filters(_base_query(), filters)
        page = await paginate(session, query, *paging(filters, settings))
        return page.model_dump(mode="json", by_alias=True)

    cached = await cache.remember(
        key, settings.cache.search_ttl_seconds, compute, tags=[ARTICLES_SEARCH_TAG]
    )
    return ArticlePage.model_validate(cached)


async def load_preferences(session: AsyncSession, user_id: int) -> Optional[UserPreferences]:
    result = await session.execute(
        select(DBUserPreferences).where(DBUserPreferences.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return None
    return UserPreferences.model_validate(row)


async def personalized_feed(
    session: AsyncSession,
    cache: TaggedCache,
    user_id: int,
    filters: FeedFilters,
    settings: Optional[Settings] = None,
) -> tuple[Page[NormalizedArticle], bool]:
    """
    Articles matching any of the user's preferences, newest first.

    Returns:
        Tuple of (page, personalized). `personalized` is False when the
        user has no preferences and the general listing was served.
    """
    settings = settings or get_settings()
    params = filters.query_params()
    preferences = await load_preferences(session, user_id)

    if preferences is None or preferences.is_empty:
        async def compute_default():
            page = await paginate(session, _base_query(), *paging(filters, settings))
            return page.model_dump(mode="json", by_alias=True)

        cached = await cache.remember(
            default_feed_cache_key(user_id, params),
            settings.cache.feed_ttl_seconds,
            compute_default,
            tags=[user_feed_tag(user_id)],
        )
        return ArticlePage.model_validate(cached), False

    async def compute():
        clauses = []
        if preferences.preferred_sources:
            clauses.append(DBArticle.source_id.in_(preferences.preferred_sources))
        if preferences.preferred_categories:
            clauses.append(DBArticle.category_id.in_(preferences.preferred_categories))
        if preferences.preferred_authors:
            clauses.append(DBArticle.author.in_(preferences.preferred_authors))
        query = _base_query().where(or_(*clauses))
        page = await paginate(session, query, *paging(filters, settings))
        return page.model_dump(mode="json", by_alias=True)

    cached = await cache.remember(
        feed_cache_key(user_id, params),
        settings.cache.feed_ttl_seconds,
        compute,
        tags=[user_feed_tag(user_id)],
    )
    return ArticlePage.model_validate(cached), True


# =============================================================================
# Metadata
# =============================================================================

async def list_sources(
    session: AsyncSession,
    cache: TaggedCache,
    settings: Optional[Settings] = None,
) -> list[SourceOut]:
    settings = settings or get_settings()

    async def compute():
        result = await session.execute(select(DBSource).order_by(DBSource.id))
        return [SourceOut.model_validate(s).model_dump() for s in result.scalars().all()]

    cached = await cache.remember(ALL_SOURCES_KEY, settings.cache.metadata_ttl_seconds, compute)
    return [SourceOut.model_validate(s) for s in cached]


async def list_categories(
    session: AsyncSession,
    cache: TaggedCache,
    settings: Optional[Settings] = None,
) -> list[CategoryOut]:
    settings = settings or get_settings()

    async def compute():
        result = await session.execute(select(DBCategory).order_by(DBCategory.id))
        return [CategoryOut.model_validate(c).model_dump() for c in result.scalars().all()]

    cached = await cache.remember(ALL_CATEGORIES_KEY, settings.cache.metadata_ttl_seconds, compute)
    return [CategoryOut.model_validate(c) for c in cached]


async def list_authors(
    session: AsyncSession,
    cache: TaggedCache,
    settings: Optional[Settings] = None,
) -> list[str]:
    """Distinct non-null authors across all articles."""
    settings = settings or get_settings()

    async def compute():
        result = await session.execute(
            select(DBArticle.author)
            .where(DBArticle.author.is_not(None))
            .distinct()
            .order_by(DBArticle.author)
        )
        return list(result.scalars().all())

    return await cache.remember(ALL_AUTHORS_KEY, settings.cache.metadata_ttl_seconds, compute)
