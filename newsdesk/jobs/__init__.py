"""
Background jobs: the news scrape and the policy that runs it.
"""
from newsdesk.jobs.runner import TaskPolicy, run_with_policy
from newsdesk.jobs.scrape_news import (
    AdapterOutcome,
    CacheInvalidationGate,
    ScrapeNewsJob,
    ScrapeReport,
)

__all__ = [
    "AdapterOutcome",
    "CacheInvalidationGate",
    "ScrapeNewsJob",
    "ScrapeReport",
    "TaskPolicy",
    "run_with_policy",
]
