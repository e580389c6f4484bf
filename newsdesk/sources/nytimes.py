"""
New York Times Article Search API adapter.
API docs: https://developer.nytimes.com/docs/articlesearch-product/1/overview
"""
from typing import Any, Optional

from newsdesk.models.database import AUTHOR_MAX_LENGTH, TITLE_MAX_LENGTH, URL_MAX_LENGTH
from newsdesk.models.domain import GENERAL_CATEGORY, ArticleRecord
from newsdesk.sources.base import NewsProviderAdapter, dig, parse_timestamp, truncate

SOURCE_NAME = "New York Times"
SOURCE_API_ID = "new-york-times"

# Multimedia entries carry paths relative to the site root
IMAGE_BASE_URL = "https://www.nytimes.com/"

RESPONSE_FIELDS = "web_url,headline,pub_date,byline,snippet,multimedia,_id,news_desk"


class NyTimesAdapter(NewsProviderAdapter):
    """Adapter for the NYT `articlesearch.json` endpoint."""

    name = "New York Times"
    BASE_URL = "https://api.nytimes.com/svc/search/v2/articlesearch.json"

    @property
    def api_key(self) -> Optional[str]:
        return self.settings.nyt_api_key

    @property
    def endpoint(self) -> str:
        return self.BASE_URL

    def default_params(self) -> dict[str, Any]:
        return {
            "api-key": self.api_key,
            "q": "news",
            "fl": RESPONSE_FIELDS,
            "page": 0,
            "sort": "newest",
        }

    def extract_records(self, payload: dict) -> list[dict]:
        return dig(payload, "response", "docs") or []

    @staticmethod
    def first_image_url(multimedia: Any) -> Optional[str]:
        """Absolute URL of the first multimedia entry that has a path."""
        if not isinstance(multimedia, list):
            return None
        for media in multimedia:
            if isinstance(media, dict) and media.get("url"):
                return IMAGE_BASE_URL + media["url"]
        return None

    def parse_record(self, data: dict) -> Optional[ArticleRecord]:
        url = data.get("web_url")
        title = dig(data, "headline", "main")
        if not url or not title:
            return None

        return ArticleRecord(
            source_name=SOURCE_NAME,
            source_api_id=SOURCE_API_ID,
            category_name=data.get("news_desk") or GENERAL_CATEGORY,
            api_article_id=data.get("_id"),
            author=truncate(dig(data, "byline", "original"), AUTHOR_MAX_LENGTH),
            title=truncate(title, TITLE_MAX_LENGTH),
            description=data.get("snippet"),
            url=truncate(url, URL_MAX_LENGTH),
            url_to_image=self.first_image_url(data.get("multimedia")),
            published_at=parse_timestamp(data.get("pub_date")),
            # Lead paragraph stands in for the body
            content=data.get("lead_paragraph"),
        )
