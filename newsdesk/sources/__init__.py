"""
News provider adapters for Newsdesk.
"""
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsdesk.config import Settings
from newsdesk.sources.base import NewsProviderAdapter
from newsdesk.sources.guardian import GuardianAdapter
from newsdesk.sources.newsapi import NewsApiOrgAdapter
from newsdesk.sources.nytimes import NyTimesAdapter

__all__ = [
    "NewsProviderAdapter",
    "NewsApiOrgAdapter",
    "GuardianAdapter",
    "NyTimesAdapter",
    "build_adapters",
]


def build_adapters(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> list[NewsProviderAdapter]:
    """All configured providers, in the fixed order the scrape job runs them."""
    return [
        NewsApiOrgAdapter(session_factory, settings, client),
        GuardianAdapter(session_factory, settings, client),
        NyTimesAdapter(session_factory, settings, client),
    ]
