"""
Domain models for Newsdesk.
These are the core business entities, independent of database/API representation.
"""
from datetime import date, datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

GENERAL_CATEGORY = "General"


# =============================================================================
# Ingestion
# =============================================================================

class ArticleRecord(BaseModel):
    """
    Provider record mapped onto the common shape, before persistence.

    Source and category are still names here; the repository resolves
    them to ids. Length caps have already been applied.
    """
    source_name: str
    source_api_id: Optional[str] = None
    category_name: str = GENERAL_CATEGORY

    api_article_id: Optional[str] = None
    author: Optional[str] = None
    title: str
    description: Optional[str] = None
    url: str
    url_to_image: Optional[str] = None
    published_at: Optional[datetime] = None
    content: Optional[str] = None


class SourceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class NormalizedArticle(BaseModel):
    """A persisted article, as returned by adapters and the read API."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_id: int
    category_id: Optional[int] = None
    api_article_id: Optional[str] = None
    author: Optional[str] = None
    title: str
    description: Optional[str] = None
    url: str
    url_to_image: Optional[str] = None
    published_at: Optional[datetime] = None
    content: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    source: Optional[SourceOut] = None
    category: Optional[CategoryOut] = None


# =============================================================================
# Read side
# =============================================================================

class ArticleFilters(BaseModel):
    """Search parameters for the article listing."""
    keyword: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category: Optional[str] = None
    source: Optional[str] = None
    page: Optional[int] = Field(default=None, ge=1)
    per_page: Optional[int] = Field(default=None, ge=1)

    def query_params(self) -> dict[str, str]:
        """Supplied parameters, as a query string would carry them."""
        params = self.model_dump(mode="json", exclude_none=True)
        return {key: str(value) for key, value in params.items()}


class FeedFilters(BaseModel):
    """Paging parameters for the personalized feed."""
    page: Optional[int] = Field(default=None, ge=1)
    per_page: Optional[int] = Field(default=None, ge=1)

    def query_params(self) -> dict[str, str]:
        params = self.model_dump(mode="json", exclude_none=True)
        return {key: str(value) for key, value in params.items()}


class Page(BaseModel, Generic[T]):
    """One page of results with paginator metadata."""
    model_config = ConfigDict(populate_by_name=True)

    current_page: int
    data: list[T]
    per_page: int
    total: int
    last_page: int
    from_: Optional[int] = Field(default=None, alias="from")
    to: Optional[int] = None

    @classmethod
    def build(cls, items: list[T], total: int, page: int, per_page: int) -> "Page[T]":
        last_page = max((total + per_page - 1) // per_page, 1)
        first = (page - 1) * per_page + 1 if items else None
        last = first + len(items) - 1 if items else None
        return cls(
            current_page=page,
            data=items,
            per_page=per_page,
            total=total,
            last_page=last_page,
            from_=first,
            to=last,
        )


class UserPreferences(BaseModel):
    """A user's preferred sources, categories and authors."""
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    preferred_sources: list[int] = Field(default_factory=list)
    preferred_categories: list[int] = Field(default_factory=list)
    preferred_authors: list[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not (self.preferred_sources or self.preferred_categories or self.preferred_authors)


class UserPreferencesUpdate(BaseModel):
    """Request body for saving preferences."""
    preferred_sources: Optional[list[int]] = None
    preferred_categories: Optional[list[int]] = None
    preferred_authors: Optional[list[str]] = None
