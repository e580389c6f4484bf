"""
Background task runner for the scrape job.

The job itself knows nothing about attempts or time limits; the policy
here retries a whole run from scratch, which is safe because every
write it makes is an upsert.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_fixed

from newsdesk.config import ScrapeSettings
from newsdesk.jobs.scrape_news import ScrapeNewsJob, ScrapeReport

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TaskPolicy:
    """Attempt ceiling, per-attempt timeout and wait between attempts."""
    max_attempts: int = 3
    timeout_seconds: float = 300.0
    backoff_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: ScrapeSettings) -> "TaskPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            timeout_seconds=settings.timeout_seconds,
            backoff_seconds=settings.backoff_seconds,
        )


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.warning(
        "Scrape attempt failed, retrying",
        attempt=retry_state.attempt_number,
        error=repr(error),
    )


async def run_with_policy(job: ScrapeNewsJob, policy: TaskPolicy) -> Optional[ScrapeReport]:
    """
    Run `job` under `policy`.

    Returns:
        The report of the first attempt that completed, or None once
        every attempt has failed (the job's `failed` hook is called).
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_fixed(policy.backoff_seconds),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                return await asyncio.wait_for(job.run(), timeout=policy.timeout_seconds)
    except Exception as e:
        job.failed(e)
        return None
