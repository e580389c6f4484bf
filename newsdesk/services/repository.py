"""
Persistence helpers for ingestion.

Source and Category names are resolved with a conflict-tolerant insert
followed by a read-back, so two runs sighting the same name at the same
time still end up with a single row. Articles are upserted on `url`.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from newsdesk.models.database import DBArticle, DBCategory, DBSource
from newsdesk.models.domain import ArticleRecord

# Article columns overwritten when a URL is seen again
_ARTICLE_UPDATE_COLUMNS = (
    "source_id",
    "category_id",
    "api_article_id",
    "author",
    "title",
    "description",
    "url_to_image",
    "published_at",
    "content",
)


def _dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


def _insert_ignore(session: AsyncSession, table, values: dict[str, Any], conflict_column: str):
    """INSERT that silently does nothing when `conflict_column` already holds the value."""
    dialect = _dialect_name(session)
    if dialect == "sqlite":
        return sqlite.insert(table).values(**values).on_conflict_do_nothing(
            index_elements=[conflict_column]
        )
    if dialect == "postgresql":
        return postgresql.insert(table).values(**values).on_conflict_do_nothing(
            index_elements=[conflict_column]
        )
    if dialect in ("mysql", "mariadb"):
        return mysql.insert(table).values(**values).prefix_with("IGNORE")
    raise ValueError(f"Unsupported database dialect for conflict-tolerant inserts: {dialect}")


def _upsert(session: AsyncSession, table, values: dict[str, Any], conflict_column: str, update_columns):
    dialect = _dialect_name(session)
    if dialect in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = insert(table).values(**values)
        updates = {column: stmt.excluded[column] for column in (*update_columns, "updated_at")}
        return stmt.on_conflict_do_update(index_elements=[conflict_column], set_=updates)
    if dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(table).values(**values)
        updates = {column: stmt.inserted[column] for column in (*update_columns, "updated_at")}
        return stmt.on_duplicate_key_update(**updates)
    raise ValueError(f"Unsupported database dialect for upserts: {dialect}")


async def find_or_create_source(
    session: AsyncSession,
    name: str,
    api_id: str | None = None,
) -> DBSource:
    """Return the Source called `name`, creating it with `api_id` if absent."""
    now = datetime.utcnow()
    await session.execute(
        _insert_ignore(
            session,
            DBSource.__table__,
            {"name": name, "api_id": api_id, "created_at": now, "updated_at": now},
            "name",
        )
    )
    result = await session.execute(select(DBSource).where(DBSource.name == name))
    return result.scalar_one()


async def find_or_create_category(session: AsyncSession, name: str) -> DBCategory:
    """Return the Category called `name`, creating it if absent."""
    now = datetime.utcnow()
    await session.execute(
        _insert_ignore(
            session,
            DBCategory.__table__,
            {"name": name, "created_at": now, "updated_at": now},
            "name",
        )
    )
    result = await session.execute(select(DBCategory).where(DBCategory.name == name))
    return result.scalar_one()


async def upsert_article(session: AsyncSession, record: ArticleRecord) -> DBArticle:
    """
    Insert or refresh the article identified by `record.url`.

    Resolves the record's source and category names first. Returns the
    stored row with `source` and `category` loaded.
    """
    source = await find_or_create_source(session, record.source_name, record.source_api_id)
    category = await find_or_create_category(session, record.category_name)

    now = datetime.utcnow()
    values = {
        "source_id": source.id,
        "category_id": category.id,
        "api_article_id": record.api_article_id,
        "author": record.author,
        "title": record.title,
        "description": record.description,
        "url": record.url,
        "url_to_image": record.url_to_image,
        "published_at": record.published_at,
        "content": record.content,
        "created_at": now,
        "updated_at": now,
    }
    await session.execute(
        _upsert(session, DBArticle.__table__, values, "url", _ARTICLE_UPDATE_COLUMNS)
    )

    result = await session.execute(
        select(DBArticle)
        .where(DBArticle.url == record.url)
        .options(selectinload(DBArticle.source), selectinload(DBArticle.category))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()
