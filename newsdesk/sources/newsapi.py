"""
NewsAPI.org adapter for current news articles.
API docs: https://newsapi.org/docs
"""
from typing import Any, Optional

from newsdesk.models.database import AUTHOR_MAX_LENGTH, TITLE_MAX_LENGTH, URL_MAX_LENGTH
from newsdesk.models.domain import GENERAL_CATEGORY, ArticleRecord
from newsdesk.sources.base import NewsProviderAdapter, dig, parse_timestamp, truncate


class NewsApiOrgAdapter(NewsProviderAdapter):
    """Adapter for the NewsAPI.org `everything` endpoint."""

    name = "NewsAPI.org"
    BASE_URL = "https://newsapi.org/v2/"

    @property
    def api_key(self) -> Optional[str]:
        return self.settings.newsapi_key

    @property
    def endpoint(self) -> str:
        return f"{self.BASE_URL}everything"

    def default_params(self) -> dict[str, Any]:
        return {
            "q": "news",
            "language": "en",
            "pageSize": 100,
        }

    def request_headers(self) -> dict[str, str]:
        return {"X-Api-Key": self.api_key or ""}

    def extract_records(self, payload: dict) -> list[dict]:
        return payload.get("articles") or []

    def parse_record(self, data: dict) -> Optional[ArticleRecord]:
        """Parse a NewsAPI article into an ArticleRecord."""
        url = data.get("url")
        title = data.get("title")
        if not url or not title:
            return None

        url = truncate(url, URL_MAX_LENGTH)

        return ArticleRecord(
            source_name=dig(data, "source", "name") or "Unknown Source",
            source_api_id=dig(data, "source", "id"),
            category_name=GENERAL_CATEGORY,
            # No separate id in this API, the URL doubles as one
            api_article_id=url,
            author=truncate(data.get("author") or "Unknown", AUTHOR_MAX_LENGTH),
            title=truncate(title, TITLE_MAX_LENGTH),
            description=data.get("description"),
            url=url,
            url_to_image=data.get("urlToImage"),
            published_at=parse_timestamp(data.get("publishedAt")),
            content=data.get("content"),
        )
