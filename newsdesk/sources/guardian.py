"""
The Guardian content API adapter.
API docs: https://open-platform.theguardian.com/documentation/
"""
from typing import Any, Optional

from newsdesk.models.database import AUTHOR_MAX_LENGTH, TITLE_MAX_LENGTH, URL_MAX_LENGTH
from newsdesk.models.domain import GENERAL_CATEGORY, ArticleRecord
from newsdesk.sources.base import NewsProviderAdapter, dig, parse_timestamp, truncate

SOURCE_NAME = "The Guardian"
SOURCE_API_ID = "the-guardian"


class GuardianAdapter(NewsProviderAdapter):
    """
    Adapter for the Guardian `search` endpoint.

    Byline, thumbnail and body text come back under `fields` when asked
    for via `show-fields`. Search results carry no separate summary, so
    description is always empty.
    """

    name = "The Guardian"
    BASE_URL = "https://content.guardianapis.com/"

    @property
    def api_key(self) -> Optional[str]:
        return self.settings.guardian_api_key

    @property
    def endpoint(self) -> str:
        return f"{self.BASE_URL}search"

    def default_params(self) -> dict[str, Any]:
        return {
            "api-key": self.api_key,
            "q": "news",
            "show-fields": "bodyText,byline,thumbnail",
            "page-size": 50,
        }

    def extract_records(self, payload: dict) -> list[dict]:
        return dig(payload, "response", "results") or []

    def parse_record(self, data: dict) -> Optional[ArticleRecord]:
        url = data.get("webUrl")
        title = data.get("webTitle")
        if not url or not title:
            return None

        return ArticleRecord(
            source_name=SOURCE_NAME,
            source_api_id=SOURCE_API_ID,
            category_name=data.get("sectionName") or GENERAL_CATEGORY,
            api_article_id=data.get("id"),
            author=truncate(dig(data, "fields", "byline"), AUTHOR_MAX_LENGTH),
            title=truncate(title, TITLE_MAX_LENGTH),
            description=None,
            url=truncate(url, URL_MAX_LENGTH),
            url_to_image=dig(data, "fields", "thumbnail"),
            published_at=parse_timestamp(data.get("webPublicationDate")),
            content=dig(data, "fields", "bodyText"),
        )
