"""
Shared fixtures: an isolated SQLite database, a fresh cache, settings with
provider keys and a fake HTTP layer for the three news providers.
"""

from typing import Callable, Optional

import httpx
import pytest
import pytest_asyncio

from newsdesk.config import Settings
from newsdesk.models.database import Database
from newsdesk.services.cache import MemoryCache, TaggedCache

NEWSAPI_HOST = "newsapi.org"
GUARDIAN_HOST = "content.guardianapis.com"
NYT_HOST = "api.nytimes.com"


# Sample NewsAPI.org `everything` response
SAMPLE_NEWSAPI_RESPONSE = {
    "status": "ok",
    "totalResults": 1,
    "articles": [
        {
            "source": {"id": "abc-news", "name": "ABC News"},
            "author": "Test Author NewsAPI",
            "title": "NewsAPI Article Title",
            "description": "NewsAPI description.",
            "url": "http://newsapi.example.com/article1",
            "urlToImage": "http://newsapi.example.com/image1.jpg",
            "publishedAt": "2025-07-01T10:00:00Z",
            "content": "NewsAPI content.",
        },
    ],
}

# Sample Guardian `search` response
SAMPLE_GUARDIAN_RESPONSE = {
    "response": {
        "status": "ok",
        "total": 1,
        "results": [
            {
                "id": "guardian/article/1",
                "type": "article",
                "sectionId": "news",
                "sectionName": "News",
                "webPublicationDate": "2025-07-01T11:30:00Z",
                "webTitle": "Guardian Article Title",
                "webUrl": "http://guardian.example.com/article1",
                "apiUrl": "http://guardian.example.com/api/article1",
                "fields": {
                    "byline": "Test Author Guardian",
                    "bodyText": "Guardian body text.",
                    "thumbnail": "http://guardian.example.com/thumbnail1.jpg",
                },
            },
        ],
    },
}

# Sample NYT `articlesearch.json` response
SAMPLE_NYT_RESPONSE = {
    "response": {
        "docs": [
            {
                "web_url": "http://nytimes.example.com/article1",
                "headline": {"main": "NYT Article Title"},
                "pub_date": "2025-07-01T12:00:00+0000",
                "byline": {"original": "By Test Author NYT"},
                "snippet": "NYT snippet.",
                "lead_paragraph": "NYT lead paragraph.",
                "multimedia": [{"url": "images/2025/07/01/nyt-image1.jpg"}],
                "_id": "nyt-article-1",
                "news_desk": "World",
            },
        ],
    },
}


class FakeProviders:
    """
    httpx.MockTransport handler routing requests by host.

    Each host maps to a JSON payload, an int status code, or a callable
    taking the request and returning an httpx.Response. Every request is
    recorded in `requests`.
    """

    def __init__(self, routes: Optional[dict] = None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.host)
        if route is None:
            return httpx.Response(404, json={"message": "not found"})
        if callable(route):
            return route(request)
        if isinstance(route, int):
            return httpx.Response(route, json={})
        return httpx.Response(200, json=route)

    def requests_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        newsapi_key="dummy_key_newsapi",
        guardian_api_key="dummy_key_guardian",
        nyt_api_key="dummy_key_nyt",
    )


@pytest.fixture
def settings_without_keys(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        newsapi_key=None,
        guardian_api_key=None,
        nyt_api_key=None,
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.database_url)
    await db.create_tables()
    yield db
    await db.dispose()


@pytest.fixture
def cache() -> TaggedCache:
    return MemoryCache()


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders(
        {
            NEWSAPI_HOST: SAMPLE_NEWSAPI_RESPONSE,
            GUARDIAN_HOST: SAMPLE_GUARDIAN_RESPONSE,
            NYT_HOST: SAMPLE_NYT_RESPONSE,
        }
    )


@pytest_asyncio.fixture
async def http_client(providers):
    async with httpx.AsyncClient(transport=httpx.MockTransport(providers)) as client:
        yield client


def make_adapter(adapter_cls: Callable, database: Database, settings: Settings, client):
    return adapter_cls(database.async_session, settings, client)
