"""
Saving and loading per-user feed preferences.
"""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk.models.database import AUTHOR_MAX_LENGTH, DBCategory, DBSource, DBUser, DBUserPreferences
from newsdesk.models.domain import UserPreferences, UserPreferencesUpdate
from newsdesk.services.articles import load_preferences
from newsdesk.services.cache import TaggedCache, user_feed_tag

logger = structlog.get_logger(__name__)


class PreferenceValidationError(ValueError):
    """Raised when a preference update references unknown ids or bad values."""

    def __init__(self, errors: dict[str, list[str]]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {', '.join(msgs)}" for field, msgs in errors.items()))


async def get_preferences(session: AsyncSession, user_id: int) -> Optional[UserPreferences]:
    """Stored preferences, or None if the user never saved any."""
    return await load_preferences(session, user_id)


async def _missing_ids(session: AsyncSession, model, ids: list[int]) -> list[int]:
    if not ids:
        return []
    result = await session.execute(select(model.id).where(model.id.in_(ids)))
    found = set(result.scalars().all())
    return [i for i in ids if i not in found]


async def validate_update(session: AsyncSession, update: UserPreferencesUpdate) -> None:
    errors: dict[str, list[str]] = {}

    missing = await _missing_ids(session, DBSource, update.preferred_sources or [])
    if missing:
        errors["preferred_sources"] = [f"Unknown source id {i}" for i in missing]

    missing = await _missing_ids(session, DBCategory, update.preferred_categories or [])
    if missing:
        errors["preferred_categories"] = [f"Unknown category id {i}" for i in missing]

    too_long = [a for a in update.preferred_authors or [] if len(a) > AUTHOR_MAX_LENGTH]
    if too_long:
        errors["preferred_authors"] = [
            f"Author names may not exceed {AUTHOR_MAX_LENGTH} characters"
        ]

    if errors:
        raise PreferenceValidationError(errors)


async def save_preferences(
    session: AsyncSession,
    cache: TaggedCache,
    user_id: int,
    update: UserPreferencesUpdate,
) -> UserPreferences:
    """
    Store or replace a user's preferences and drop their cached feed pages.

    Raises:
        PreferenceValidationError: if an id does not exist or an author is too long
    """
    await validate_update(session, update)

    # Ensure user exists
    user = await session.get(DBUser, user_id)
    if user is None:
        session.add(DBUser(id=user_id))
        await session.flush()

    result = await session.execute(
        select(DBUserPreferences).where(DBUserPreferences.user_id == user_id)
    )
    prefs = result.scalar_one_or_none()
    if prefs is None:
        prefs = DBUserPreferences(user_id=user_id)
        session.add(prefs)

    prefs.preferred_sources = list(update.preferred_sources or [])
    prefs.preferred_categories = list(update.preferred_categories or [])
    prefs.preferred_authors = list(update.preferred_authors or [])
    prefs.updated_at = datetime.utcnow()

    await session.commit()
    await session.refresh(prefs)

    removed = await cache.invalidate_tags(user_feed_tag(user_id))
    logger.info("Updated user preferences", user_id=user_id, feed_pages_evicted=removed)

    return UserPreferences.model_validate(prefs)
