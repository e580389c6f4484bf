"""
Base interface for news provider adapters.
All providers (NewsAPI.org, The Guardian, New York Times) implement this interface.
"""
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from newsdesk.config import Settings, get_settings
from newsdesk.models.domain import ArticleRecord, NormalizedArticle
from newsdesk.services.repository import upsert_article

logger = structlog.get_logger(__name__)

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def truncate(value: Optional[str], limit: int) -> Optional[str]:
    """Cut `value` to `limit` characters, passing None through."""
    if value is None:
        return None
    return value[:limit]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a provider ISO 8601 timestamp into naive UTC.

    Accepts `Z`, `+00:00` and compact `+0000` offsets. Returns None for
    missing or unparseable values.
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET.sub(r"\1:\2", text)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def dig(data: Any, *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a step is missing."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class NewsProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Each adapter handles:
    - Building the provider request (auth, default query, page size)
    - Mapping provider records to ArticleRecord
    - Persisting via upsert-by-URL

    `fetch` fails closed: configuration, transport and parsing problems
    are logged and turn into an empty result.
    """

    #: Human-readable provider name used in logs
    name: str = "provider"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self._client = client

    # ------------------------------------------------------------------
    # Provider specifics
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def api_key(self) -> Optional[str]:
        """Credential for this provider, None when not configured."""
        pass

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Full URL of the search endpoint."""
        pass

    @abstractmethod
    def default_params(self) -> dict[str, Any]:
        """Query parameters sent unless the caller overrides them."""
        pass

    def request_headers(self) -> dict[str, str]:
        """Extra headers (auth header providers override this)."""
        return {}

    @abstractmethod
    def extract_records(self, payload: dict) -> list[dict]:
        """Pull the list of raw article dicts out of a response body."""
        pass

    @abstractmethod
    def parse_record(self, data: dict) -> Optional[ArticleRecord]:
        """
        Map one provider record to an ArticleRecord.

        Returns None when the record lacks a URL or headline.
        """
        pass

    # ------------------------------------------------------------------
    # Shared pipeline
    # ------------------------------------------------------------------

    def build_params(self, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Defaults merged with caller overrides (caller wins)."""
        return {**self.default_params(), **(params or {})}

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _request(self, params: dict[str, Any]) -> dict:
        """GET the provider endpoint; transport errors are retried, HTTP errors are not."""
        if self._client is not None:
            response = await self._client.get(
                self.endpoint,
                params=params,
                headers=self.request_headers(),
                timeout=self.settings.http_timeout_seconds,
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    self.endpoint,
                    params=params,
                    headers=self.request_headers(),
                    timeout=self.settings.http_timeout_seconds,
                )

        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"{self.name} returned an unexpected payload")
        return payload

    def normalize(self, payload: dict) -> list[ArticleRecord]:
        """Parse every record, dropping the ones without URL or headline."""
        records = []
        for data in self.extract_records(payload) or []:
            if not isinstance(data, dict):
                continue
            record = self.parse_record(data)
            if record is not None:
                records.append(record)
        return records

    async def _store(self, records: list[ArticleRecord]) -> list[NormalizedArticle]:
        """Upsert all records in one transaction."""
        stored = []
        async with self.session_factory() as session:
            for record in records:
                article = await upsert_article(session, record)
                stored.append(NormalizedArticle.model_validate(article))
            await session.commit()
        return stored

    async def fetch(self, params: Optional[dict[str, Any]] = None) -> list[NormalizedArticle]:
        """
        Fetch, normalize and persist articles from this provider.

        Args:
            params: Query parameters overriding the provider defaults

        Returns:
            Persisted articles, empty on any failure
        """
        if not self.api_key:
            logger.error(f"{self.name} API key is not set", provider=self.name)
            return []

        try:
            payload = await self._request(self.build_params(params))
            records = self.normalize(payload)
            return await self._store(records)
        except Exception as e:
            logger.error(
                f"Error fetching from {self.name}",
                provider=self.name,
                error=str(e),
                exc_info=True,
            )
            return []

