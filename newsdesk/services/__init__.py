"""
Services layer for Newsdesk.

1. Repository (repository.py):
   - Conflict-tolerant find-or-create for sources and categories
   - Article upsert keyed on URL

2. Cache (cache.py):
   - In-process TTL cache with tag invalidation
   - Cache key builders shared by the read side and the scrape job

3. Articles (articles.py):
   - Search, personalized feed and metadata listings

4. Preferences (preferences.py):
   - Validating and storing per-user feed preferences

5. Rate limiting (rate_limiter.py):
   - Per-client request budgets for the read API
"""
