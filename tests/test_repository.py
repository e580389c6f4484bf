"""
Tests for the ingestion persistence helpers.
"""

import asyncio
from datetime import datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from newsdesk.models.database import DBArticle, DBCategory, DBSource
from newsdesk.models.domain import ArticleRecord
from newsdesk.services.repository import (
    find_or_create_category,
    find_or_create_source,
    upsert_article,
)


def make_record(**overrides) -> ArticleRecord:
    values = {
        "source_name": "Reuters",
        "source_api_id": "reuters",
        "category_name": "Business",
        "api_article_id": "reuters-1",
        "author": "Jane Reporter",
        "title": "Markets rally",
        "description": "Stocks close higher.",
        "url": "https://reuters.example.com/markets-rally",
        "published_at": datetime(2025, 7, 1, 9, 0, 0),
        "content": "Full text.",
    }
    values.update(overrides)
    return ArticleRecord(**values)


async def count(database, model) -> int:
    async with database.async_session() as session:
        return await session.scalar(select(func.count(model.id)))


class TestFindOrCreate:
    """Tests for source and category resolution."""

    @pytest.mark.asyncio
    async def test_source_created_once(self, database):
        async with database.async_session() as session:
            first = await find_or_create_source(session, "Reuters", "reuters")
            second = await find_or_create_source(session, "Reuters", "other-id")
            await session.commit()

        assert first.id == second.id
        # The first sighting's api_id is kept
        assert second.api_id == "reuters"
        assert await count(database, DBSource) == 1

    @pytest.mark.asyncio
    async def test_category_created_once(self, database):
        async with database.async_session() as session:
            first = await find_or_create_category(session, "World")
            second = await find_or_create_category(session, "World")
            other = await find_or_create_category(session, "Sports")
            await session.commit()

        assert first.id == second.id
        assert other.id != first.id
        assert await count(database, DBCategory) == 2

    @pytest.mark.asyncio
    async def test_concurrent_sessions_do_not_duplicate_names(self, database):
        async def resolve():
            async with database.async_session() as session:
                source = await find_or_create_source(session, "Reuters", "reuters")
                await session.commit()
                return source.id

        ids = await asyncio.gather(resolve(), resolve(), resolve())

        assert len(set(ids)) == 1
        assert await count(database, DBSource) == 1

    @pytest.mark.asyncio
    async def test_duplicate_name_violates_unique_constraint(self, database):
        async with database.async_session() as session:
            session.add(DBSource(name="Reuters"))
            await session.commit()

        async with database.async_session() as session:
            session.add(DBSource(name="Reuters"))
            with pytest.raises(IntegrityError):
                await session.commit()


class TestUpsertArticle:
    """Tests for upsert-by-URL."""

    @pytest.mark.asyncio
    async def test_insert_resolves_source_and_category(self, database):
        async with database.async_session() as session:
            article = await upsert_article(session, make_record())
            await session.commit()

        assert article.id is not None
        assert article.source.name == "Reuters"
        assert article.source.api_id == "reuters"
        assert article.category.name == "Business"

    @pytest.mark.asyncio
    async def test_same_url_updates_in_place(self, database):
        async with database.async_session() as session:
            original = await upsert_article(session, make_record())
            await session.commit()

        async with database.async_session() as session:
            updated = await upsert_article(
                session,
                make_record(title="Markets rally further", category_name="Markets"),
            )
            await session.commit()

        assert updated.id == original.id
        assert updated.title == "Markets rally further"
        assert updated.category.name == "Markets"
        assert await count(database, DBArticle) == 1

    @pytest.mark.asyncio
    async def test_distinct_urls_create_rows(self, database):
        async with database.async_session() as session:
            await upsert_article(session, make_record())
            await upsert_article(
                session,
                make_record(url="https://reuters.example.com/other", api_article_id="reuters-2"),
            )
            await session.commit()

        assert await count(database, DBArticle) == 2
        assert await count(database, DBSource) == 1
