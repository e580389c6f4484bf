"""
SQLAlchemy database models for Newsdesk.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    func,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Column limits shared with the ingestion normalizers
AUTHOR_MAX_LENGTH = 255
TITLE_MAX_LENGTH = 255
URL_MAX_LENGTH = 767


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Sources & Categories
# =============================================================================

class DBSource(Base):
    """A publisher of articles, keyed by display name."""
    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    api_id: Mapped[Optional[str]] = mapped_column(String(255))
    url: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    articles: Mapped[list["DBArticle"]] = relationship(
        back_populates="source", cascade="all, delete-orphan", passive_deletes=True
    )


class DBCategory(Base):
    """Topical grouping for articles."""
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    articles: Mapped[list["DBArticle"]] = relationship(
        back_populates="category", passive_deletes=True
    )


# =============================================================================
# Articles
# =============================================================================

class DBArticle(Base):
    """One ingested story. `url` is the idempotency key across providers."""
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL")
    )
    api_article_id: Mapped[Optional[str]] = mapped_column(String(URL_MAX_LENGTH), unique=True)

    author: Mapped[Optional[str]] = mapped_column(String(AUTHOR_MAX_LENGTH))
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    url: Mapped[str] = mapped_column(String(URL_MAX_LENGTH), nullable=False, unique=True)
    url_to_image: Mapped[Optional[str]] = mapped_column(Text)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    content: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    source: Mapped["DBSource"] = relationship(back_populates="articles")
    category: Mapped[Optional["DBCategory"]] = relationship(back_populates="articles")

    __table_args__ = (
        Index("ix_articles_title", "title"),
        Index("ix_articles_published_at", "published_at"),
        Index("ix_articles_author", "author"),
    )


# =============================================================================
# Users
# =============================================================================

class DBUser(Base):
    """User account."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    preferences: Mapped[Optional["DBUserPreferences"]] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class DBUserPreferences(Base):
    """Preferred sources, categories and authors for the personalized feed."""
    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    # Stored as JSON lists
    preferred_sources: Mapped[list] = mapped_column(JSON, default=list)  # source ids
    preferred_categories: Mapped[list] = mapped_column(JSON, default=list)  # category ids
    preferred_authors: Mapped[list] = mapped_column(JSON, default=list)  # author names

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    user: Mapped["DBUser"] = relationship(back_populates="preferences")


# =============================================================================
# Cache
# =============================================================================

class DBCacheEntry(Base):
    """A cached read result shared by every process using this database."""
    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)  # unix time


class DBCacheTag(Base):
    """Tag attached to a cache entry for group invalidation."""
    __tablename__ = "cache_tags"

    tag: Mapped[str] = mapped_column(String(255), primary_key=True)
    key: Mapped[str] = mapped_column(
        String(255), ForeignKey("cache_entries.key", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (Index("ix_cache_tags_key", "key"),)


# =============================================================================
# Database Connection
# =============================================================================

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE clauses unless foreign keys are switched on."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(
            database_url,
            echo=False,  # Set to True for SQL logging
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        """Close pooled connections."""
        await self.engine.dispose()
